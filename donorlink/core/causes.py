# donorlink/core/causes.py

# Fixed cause catalogue: id -> display label
CAUSES: dict[str, str] = {
    "education": "Education",
    "healthcare": "Healthcare",
    "food": "Food & Nutrition",
    "shelter": "Shelter & Housing",
    "clothing": "Clothing",
    "elderly": "Elderly Care",
    "children": "Children's Welfare",
    "disabilities": "Disabilities Support",
    "environment": "Environment",
    "animals": "Animal Welfare",
}

# Search-only sentinel meaning "no cause filter"
ALL_CAUSES = "all"


def is_known_cause(cause_id: str) -> bool:
    return cause_id in CAUSES

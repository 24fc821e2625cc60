from typing import List, Dict, Optional, Tuple
from models import Bucket, Level

# Distance thresholds (lower distance = closer match = safer choice)
SAFE_MAX_DISTANCE = 0.18
TARGET_MAX_DISTANCE = 0.28

# Total annual cost thresholds in USD
LOW_COST_MAX = 20000
MEDIUM_COST_MAX = 35000

ACCEPTANCE_CHANCE = {
    Bucket.SAFE: Level.HIGH,
    Bucket.TARGET: Level.MEDIUM,
    Bucket.DREAM: Level.LOW,
}

def classify_distance(distance: float) -> Tuple[Bucket, Level]:
    """
    Classify a similarity distance into a bucket and acceptance chance.

    Args:
        distance: Cosine distance between profile and university

    Returns:
        (bucket, acceptance_chance)
    """
    if distance < SAFE_MAX_DISTANCE:
        bucket = Bucket.SAFE
    elif distance < TARGET_MAX_DISTANCE:
        bucket = Bucket.TARGET
    else:
        bucket = Bucket.DREAM
    return bucket, ACCEPTANCE_CHANCE[bucket]

def cost_level(total_annual_cost_usd: Optional[float]) -> Level:
    """Cost level from total annual cost; unknown cost is treated as High."""
    if total_annual_cost_usd is None:
        return Level.HIGH
    if total_annual_cost_usd < LOW_COST_MAX:
        return Level.LOW
    if total_annual_cost_usd < MEDIUM_COST_MAX:
        return Level.MEDIUM
    return Level.HIGH

def classify_university(university: Dict) -> Dict:
    """
    Tag a ranked search result with bucket, acceptance chance and cost level.

    Args:
        university: Search result dict carrying "distance"

    Returns:
        New dict with bucket / acceptance_chance / cost_level added
    """
    bucket, chance = classify_distance(university["distance"])
    return {
        **university,
        "bucket": bucket,
        "acceptance_chance": chance,
        "cost_level": cost_level(university.get("total_annual_cost_usd")),
    }

def default_fit() -> Dict:
    """Fit for a university the capped search did not return."""
    return {"bucket": Bucket.DREAM, "acceptance_chance": Level.LOW, "cost_level": Level.HIGH}

def classify_universities(universities: List[Dict]) -> Dict[str, List[Dict]]:
    """
    Classify all ranked universities into dream/target/safe groups.

    Returns:
        Dict with keys: dream, target, safe
    """
    classified = {
        "dream": [],
        "target": [],
        "safe": []
    }

    for uni in universities:
        tagged = classify_university(uni)
        classified[tagged["bucket"].value.lower()].append(tagged)

    return classified

# Models module
from .place import PlaceRecord, Review, MAX_REVIEWS
from .checkpoint import Checkpoint

__all__ = ["PlaceRecord", "Review", "MAX_REVIEWS", "Checkpoint"]

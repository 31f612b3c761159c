MAX_TEXT_LENGTH = 240
DEFAULT_MIN_SCORE = -2

REACTION_LIKE = 1
REACTION_DISLIKE = -1
REACTION_TYPES = {"like": REACTION_LIKE, "dislike": REACTION_DISLIKE}

DEFAULT_TARGET_HM = "22:30"
DEFAULT_NICKNAME_PREFIX = "睡眠伙伴"
MAX_NICKNAME_LENGTH = 32
MAX_OPENID_LENGTH = 128

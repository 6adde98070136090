class MessageRole:
    """
    Class for message roles
    """
    SYSTEM = 'system'
    USER = 'user'
    ASSISTANT = 'assistant'
    NONE = 'none'


class LorebookFormat:
    SILLYTAVERN = 'sillytavern'
    NOVELAI = 'novelai'
    AGNAI = 'agnai'
    RISU = 'risu'
    CHARACTER_BOOK = 'character_book'
    UNKNOWN = 'unknown'


class FileType:
    JSON = 'json'
    PNG = 'png'


# lorebook defaults
DEFAULT_ENTRY_PRIORITY = 100
DEFAULT_ENTRY_ORDER = 100
SCAN_SEPARATOR = "\n"
DEFAULT_ENTRY_DEPTH = 4
DEFAULT_GROUP_WEIGHT = 100

DEFAULT_SCAN_DEPTH = 2
DEFAULT_TOKEN_BUDGET = 2048
DEFAULT_RECURSION_DEPTH = 50
DEFAULT_MAX_DEPTH = 1000

UNNAMED_LOREBOOK = 'Unnamed Lorebook'
MAX_NAME_ATTEMPTS = 100

# png text chunk keywords, in lookup order
PNG_LOREBOOK_KEYWORDS = ('lorebook', 'worldinfo')
PNG_CHARACTER_KEYWORD = 'chara'
PNG_CCV3_KEYWORD = 'ccv3'

# paths
ASSETS_PATH = './lorekeeper/assets'
TOKENIZERS_PATH = ASSETS_PATH + '/tokenizers'

CLAUDE3_MODEL_GROUP = 'claude3'
GPT4_MODEL_GROUP = 'gpt-4'

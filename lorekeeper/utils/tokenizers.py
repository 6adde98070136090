import io
import math
from functools import lru_cache
from typing import Callable, Optional

from tokenizers import Tokenizer
from tiktoken import encoding_for_model

from lorekeeper.extensions import log
from lorekeeper.constants import CLAUDE3_MODEL_GROUP, TOKENIZERS_PATH, GPT4_MODEL_GROUP


SizeFunction = Callable[[str], int]


def char_count(text: str) -> int:
    return len(text)


def word_count(text: str) -> int:
    return len(text.split())


def estimate_tokens(text: str) -> int:
    """
    Rough token estimate, one token per four characters.
    """
    return math.ceil(len(text) / 4)


@lru_cache(maxsize=None)
def get_tokenizer(model_group: str):
    """
    Retrieves the tokenizer for the specified model group.
    Tokenizers are loaded on first use and cached.
    """
    if model_group == CLAUDE3_MODEL_GROUP:
        try:
            with io.open(f'{TOKENIZERS_PATH}/{model_group}_tokenizer.json', mode="r", encoding="utf-8") as f:
                tokenizer_raw = f.read()
                return Tokenizer.from_str(tokenizer_raw)
        except IOError as e:
            log.error(f"Error loading tokenizer for {model_group}: {e}")
            return None
    elif GPT4_MODEL_GROUP in model_group:
        return encoding_for_model(model_group)
    else:
        log.error(f"Unknown model group: {model_group}")
        return None


def count_tokens(model_group: str, text: str) -> int:
    """
    Counts the number of tokens in a text for the specified model group.
    """
    tokenizer = get_tokenizer(model_group)
    if tokenizer is None:
        return estimate_tokens(text)

    if model_group == CLAUDE3_MODEL_GROUP:
        return len(tokenizer.encode(text).ids)
    return len(tokenizer.encode(text))


_SIZE_FUNCTIONS = {
    'chars': char_count,
    'words': word_count,
    'estimate': estimate_tokens,
}


def get_size_function(name: Optional[str]) -> SizeFunction:
    """
    Resolves a size function by name: 'chars', 'words', 'estimate' or a
    model group handled by count_tokens. Unknown names fall back to the estimate.
    """
    if not name:
        return estimate_tokens
    if name in _SIZE_FUNCTIONS:
        return _SIZE_FUNCTIONS[name]
    if name == CLAUDE3_MODEL_GROUP or GPT4_MODEL_GROUP in name:
        return lambda text: count_tokens(name, text)

    log.warning(f"Unknown size function '{name}', using token estimate")
    return estimate_tokens

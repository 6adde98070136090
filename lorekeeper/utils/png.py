import base64
import binascii
import json
import struct
import zlib
from typing import Dict, List, Optional

from lorekeeper.constants import PNG_LOREBOOK_KEYWORDS, PNG_CHARACTER_KEYWORD, PNG_CCV3_KEYWORD
from lorekeeper.extensions import log


PNG_MAGIC_NUMBER = b'\x89PNG\r\n\x1a\n'
PNG_MAGIC_NUMBER_SIZE = len(PNG_MAGIC_NUMBER)
CHUNK_LENGTH_SIZE = 4
CHUNK_TYPE_SIZE = 4
CHUNK_CRC_SIZE = 4
TYPE_iTXt = b'iTXt'
TYPE_tEXt = b'tEXt'
TYPE_zTXt = b'zTXt'
TYPE_IEND = b'IEND'


class PngLorebookError(Exception):
    """Raised when a PNG is invalid or carries no lorebook data."""
    pass


def is_valid_png(png_data: bytes) -> bool:
    return png_data[:PNG_MAGIC_NUMBER_SIZE] == PNG_MAGIC_NUMBER


def png_read_chunks(png_data: bytes) -> List[dict]:
    """
    Reads the chunks of PNG data, stopping at IEND or at a truncated chunk.
    """
    if not is_valid_png(png_data):
        raise PngLorebookError('Invalid PNG file format')

    chunks = []
    position = PNG_MAGIC_NUMBER_SIZE
    header_size = CHUNK_LENGTH_SIZE + CHUNK_TYPE_SIZE
    while position + header_size <= len(png_data):
        chunk_length = int.from_bytes(png_data[position:position + CHUNK_LENGTH_SIZE], byteorder='big')
        chunk_type = png_data[position + CHUNK_LENGTH_SIZE:position + header_size]
        data_start = position + header_size
        data_end = data_start + chunk_length
        if data_end + CHUNK_CRC_SIZE > len(png_data):
            log.warning(f"Truncated PNG chunk {chunk_type!r} at offset {position}")
            break

        chunks.append({
            'type': chunk_type,
            'data': png_data[data_start:data_end],
            'crc': png_data[data_end:data_end + CHUNK_CRC_SIZE],
        })
        if chunk_type == TYPE_IEND:
            break
        position = data_end + CHUNK_CRC_SIZE

    return chunks


def is_text_chunk(chunk_type: bytes) -> bool:
    """
    Checks if a chunk type is a text chunk.
    """
    return chunk_type in (TYPE_iTXt, TYPE_tEXt, TYPE_zTXt)


def _decode_text_chunk(chunk: dict) -> Optional[tuple]:
    data = chunk['data']
    keyword, separator, rest = data.partition(b'\x00')
    if not separator:
        return None
    name = keyword.decode('latin1')

    if chunk['type'] == TYPE_tEXt:
        return name, rest.decode('latin1')
    if chunk['type'] == TYPE_zTXt:
        # compression method byte, then zlib stream
        return name, zlib.decompress(rest[1:]).decode('latin1')

    # iTXt: compression flag, compression method, language tag\0, translated keyword\0, text
    compressed = rest[:1] == b'\x01'
    _, _, rest = rest[2:].partition(b'\x00')
    _, _, text = rest.partition(b'\x00')
    if compressed:
        text = zlib.decompress(text)
    return name, text.decode('utf-8')


def get_text_chunks(chunks: List[dict]) -> Dict[str, str]:
    """
    Maps text chunk keywords to their text. The first chunk wins on duplicates.
    """
    texts = {}
    for chunk in chunks:
        if not is_text_chunk(chunk['type']):
            continue
        try:
            decoded = _decode_text_chunk(chunk)
        except (zlib.error, UnicodeDecodeError) as e:
            log.warning(f"Unreadable PNG text chunk: {e}")
            continue
        if decoded is not None and decoded[0] not in texts:
            texts[decoded[0]] = decoded[1]
    return texts


def _maybe_base64(text: str) -> str:
    try:
        return base64.b64decode(text, validate=True).decode('utf-8')
    except (binascii.Error, ValueError):
        return text


def _embedded_book(card_text: str, *paths) -> Optional[str]:
    card = json.loads(_maybe_base64(card_text))
    for path in paths:
        value = card
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if isinstance(value, dict) and 'entries' in value:
            return json.dumps(value)
        if isinstance(value, str) and value:
            return _maybe_base64(value)
    return None


def extract_lorebook_from_png(png_data: bytes) -> str:
    """
    Returns the lorebook JSON text stored in PNG metadata. Looks at the
    dedicated lorebook chunks first, then at books embedded in character
    cards ('chara', then 'ccv3').
    """
    texts = get_text_chunks(png_read_chunks(png_data))

    for keyword in PNG_LOREBOOK_KEYWORDS:
        if texts.get(keyword):
            return _maybe_base64(texts[keyword])

    sources = (
        (PNG_CHARACTER_KEYWORD, (('world_info',), ('character_book',), ('data', 'character_book'))),
        (PNG_CCV3_KEYWORD, (('data', 'character_book'), ('data', 'extensions', 'world_info'))),
    )
    for keyword, paths in sources:
        if not texts.get(keyword):
            continue
        try:
            book = _embedded_book(texts[keyword], *paths)
        except ValueError as e:
            log.error(f"Error extracting lorebook from '{keyword}' chunk: {e}")
            continue
        if book:
            return book

    raise PngLorebookError('No lorebook data found in PNG metadata')


def png_contains_lorebook(png_data: bytes) -> bool:
    try:
        extract_lorebook_from_png(png_data)
        return True
    except PngLorebookError:
        return False


def create_text_chunk(chunk_type: bytes, name: str, text: str) -> bytes:
    """
    Creates a text chunk with the specified type, name, and base64 encoded text.
    """
    if chunk_type not in (TYPE_iTXt, TYPE_tEXt, TYPE_zTXt):
        raise ValueError("Invalid chunk type for text data")

    name_bytes = name.encode('latin1') + b'\x00'
    text_bytes = base64.b64encode(text.encode('utf-8'))
    if chunk_type == TYPE_zTXt:
        data = name_bytes + b'\x00' + zlib.compress(text_bytes)
    elif chunk_type == TYPE_iTXt:
        data = name_bytes + b'\x00\x00' + b'\x00' + b'\x00' + text_bytes
    else:
        data = name_bytes + text_bytes

    length = len(data)
    crc = zlib.crc32(chunk_type + data)

    return struct.pack("!I", length) + chunk_type + data + struct.pack("!I", crc)

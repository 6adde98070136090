import json
import struct
import zlib

import pytest
from lorekeeper.utils.png import (PNG_MAGIC_NUMBER, PngLorebookError, create_text_chunk, extract_lorebook_from_png,
                                  get_text_chunks, png_contains_lorebook, png_read_chunks)

BOOK = {'entries': {'0': {'uid': 0, 'key': ['harbor'], 'content': 'Salt and tar.'}}}


def chunk(chunk_type: bytes, data: bytes) -> bytes:
    return struct.pack('!I', len(data)) + chunk_type + data + struct.pack('!I', zlib.crc32(chunk_type + data))


def build_png(*text_chunks: bytes) -> bytes:
    header = chunk(b'IHDR', struct.pack('!IIBBBBB', 1, 1, 8, 2, 0, 0, 0))
    return PNG_MAGIC_NUMBER + header + b''.join(text_chunks) + chunk(b'IEND', b'')


def plain_text_chunk(keyword: str, text: str) -> bytes:
    return chunk(b'tEXt', keyword.encode('latin1') + b'\x00' + text.encode('latin1'))


def test_reads_chunks_in_order():
    png = build_png(create_text_chunk(b'tEXt', 'lorebook', json.dumps(BOOK)))
    assert [c['type'] for c in png_read_chunks(png)] == [b'IHDR', b'tEXt', b'IEND']


def test_rejects_non_png_data():
    with pytest.raises(PngLorebookError):
        png_read_chunks(b'GIF89a not a png')


def test_extracts_base64_lorebook_chunk():
    png = build_png(create_text_chunk(b'tEXt', 'lorebook', json.dumps(BOOK)))
    assert json.loads(extract_lorebook_from_png(png)) == BOOK


def test_extracts_plain_worldinfo_chunk():
    png = build_png(plain_text_chunk('worldinfo', json.dumps(BOOK)))
    assert json.loads(extract_lorebook_from_png(png)) == BOOK


@pytest.mark.parametrize('chunk_type', [b'zTXt', b'iTXt'])
def test_reads_compressed_and_international_chunks(chunk_type):
    png = build_png(create_text_chunk(chunk_type, 'lorebook', json.dumps(BOOK)))
    assert json.loads(extract_lorebook_from_png(png)) == BOOK


def test_extracts_character_book_from_card():
    card = {'spec': 'chara_card_v2', 'data': {'name': 'Mira', 'character_book': {'name': 'Mira lore', 'entries': []}}}
    png = build_png(create_text_chunk(b'tEXt', 'chara', json.dumps(card)))
    assert json.loads(extract_lorebook_from_png(png)) == {'name': 'Mira lore', 'entries': []}


def test_extracts_world_info_from_ccv3_card():
    card = {'spec': 'chara_card_v3', 'data': {'extensions': {'world_info': BOOK}}}
    png = build_png(create_text_chunk(b'tEXt', 'ccv3', json.dumps(card)))
    assert json.loads(extract_lorebook_from_png(png)) == BOOK


def test_lorebook_chunk_wins_over_card():
    card = {'data': {'character_book': {'entries': []}}}
    png = build_png(create_text_chunk(b'tEXt', 'chara', json.dumps(card)),
                    create_text_chunk(b'tEXt', 'lorebook', json.dumps(BOOK)))
    assert json.loads(extract_lorebook_from_png(png)) == BOOK


def test_card_without_book_raises():
    card = {'data': {'name': 'Mira'}}
    png = build_png(create_text_chunk(b'tEXt', 'chara', json.dumps(card)))
    with pytest.raises(PngLorebookError, match='No lorebook data found'):
        extract_lorebook_from_png(png)
    assert not png_contains_lorebook(png)


def test_first_text_chunk_wins_on_duplicate_keywords():
    chunks = png_read_chunks(build_png(plain_text_chunk('note', 'first'), plain_text_chunk('note', 'second')))
    assert get_text_chunks(chunks) == {'note': 'first'}


def test_truncated_chunk_is_ignored():
    png = build_png(create_text_chunk(b'tEXt', 'lorebook', json.dumps(BOOK)))
    assert png_contains_lorebook(png[:-12])
    assert not png_contains_lorebook(png[:-20])

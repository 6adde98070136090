import base64
import json
import struct
import uuid
import zlib

import pytest
from lorekeeper.dao.lorebook_dao import LorebookDAO
from lorekeeper.dto.chat_dto import ChatCreateDTO, MessageCreateDTO
from lorekeeper.dto.lorebook_dto import ActivationRecordDTO, ChatLorebookOverridesDTO, LorebookImportDTO
from lorekeeper.services import chat_service, lorebook_service
from lorekeeper.services.chat_service import ChatNotFoundError
from lorekeeper.services.lorebook_service import (LorebookImportError, LorebookNotAppliedError,
                                                  LorebookNotFoundError, UnauthorizedAccessError)
from lorekeeper.utils.png import PNG_MAGIC_NUMBER, create_text_chunk

BOOK = {
    'entries': {
        '0': {'uid': 0, 'key': ['dragon'], 'content': 'Dragons are ancient.', 'order': 2},
        '1': {'uid': 1, 'key': ['ancient'], 'content': 'Ancient ruins lie north.', 'order': 1},
        '2': {'uid': 2, 'key': ['storm'], 'content': 'A storm rages.', 'order': 3, 'sticky': 1},
        '3': {'uid': 3, 'key': ['castle'], 'content': 'A castle.', 'disable': True},
    },
    'recursive': True,
    'scan_depth': 1,
    'token_budget': 1000,
}


def import_book(user_id=None, file_name='World.json', data=BOOK, **kwargs):
    return lorebook_service.import_lorebook(LorebookImportDTO(
        file_data=json.dumps(data),
        file_name=file_name,
        user_id=user_id,
        **kwargs
    ))


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4()}"


@pytest.fixture
def chat(app, user_id):
    return chat_service.create_chat(ChatCreateDTO(name='Test chat', user_id=user_id))


def test_import_json_lorebook(app, user_id):
    lorebook = import_book(user_id)
    assert lorebook.name == 'World'
    assert lorebook.format == 'sillytavern'
    assert lorebook.entry_count == 4

    stored = lorebook_service.get_lorebook(lorebook.id, user_id=user_id)
    assert [entry.id for entry in stored.entries] == ['0', '1', '2', '3']
    assert stored.settings.recursive


def test_import_renames_duplicates(app, user_id):
    first = import_book(user_id)
    second = import_book(user_id)
    third = import_book(user_id, custom_name='World')
    assert (first.name, second.name, third.name) == ('World', 'World (1)', 'World (2)')


def test_import_base64_json(app, user_id):
    encoded = base64.b64encode(json.dumps(BOOK).encode('utf-8')).decode('ascii')
    lorebook = lorebook_service.import_lorebook(LorebookImportDTO(file_data=encoded, file_name='b64.json', user_id=user_id))
    assert lorebook.entry_count == 4


def test_import_png(app, user_id):
    def chunk(chunk_type, data):
        return struct.pack('!I', len(data)) + chunk_type + data + struct.pack('!I', zlib.crc32(chunk_type + data))

    png = PNG_MAGIC_NUMBER + chunk(b'IHDR', b'\x00' * 13) \
        + create_text_chunk(b'tEXt', 'lorebook', json.dumps(BOOK)) + chunk(b'IEND', b'')
    lorebook = lorebook_service.import_lorebook(LorebookImportDTO(
        file_data=base64.b64encode(png).decode('ascii'),
        file_name='card.png',
        file_type='png',
        user_id=user_id
    ))
    assert lorebook.name == 'card'
    assert lorebook.entry_count == 4


def test_import_rejects_bad_data(app, user_id):
    with pytest.raises(LorebookImportError, match='Invalid JSON format'):
        lorebook_service.import_lorebook(LorebookImportDTO(file_data='{not json', file_name='x.json', user_id=user_id))

    with pytest.raises(LorebookImportError) as excinfo:
        import_book(user_id, data={'entries': {'0': {'key': 7}}})
    assert excinfo.value.errors

    with pytest.raises(LorebookImportError, match='No lorebook data found'):
        png = base64.b64encode(PNG_MAGIC_NUMBER).decode('ascii')
        lorebook_service.import_lorebook(LorebookImportDTO(file_data=png, file_name='x.png', file_type='png'))


def test_list_get_delete(app, user_id):
    lorebook = import_book(user_id)
    assert [item.id for item in lorebook_service.get_user_lorebooks(user_id=user_id)] == [lorebook.id]

    with pytest.raises(UnauthorizedAccessError):
        lorebook_service.get_lorebook(lorebook.id, user_id='someone-else')

    lorebook_service.delete_lorebook(lorebook.id, user_id=user_id)
    assert lorebook_service.get_user_lorebooks(user_id=user_id) == []
    with pytest.raises(LorebookNotFoundError):
        lorebook_service.get_lorebook(lorebook.id, user_id=user_id)


def test_stats(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id, user_id=user_id)

    stats = lorebook_service.get_lorebook_stats(lorebook.id, user_id=user_id)
    assert stats.entry_count == 4
    assert stats.active_entries == 3
    assert stats.constant_entries == 0
    assert stats.total_keys == 4
    assert stats.active_chats == 1
    assert stats.total_chats == 1


def test_apply_and_scan(app, user_id, chat):
    lorebook = import_book(user_id)
    active = lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id, user_id=user_id)
    assert active.id == lorebook.id
    assert [item.id for item in lorebook_service.get_active_lorebooks(chat.id)] == [lorebook.id]

    result = lorebook_service.scan_context_for_entries(chat.id, 'a dragon appeared', user_id=user_id)

    assert [entry.id for entry in result.activated_entries] == ['0', '1']
    assert result.text == 'Dragons are ancient.\nAncient ruins lie north.'
    assert result.total_tokens > 0
    assert result.activated_entries[0].lorebook_name == 'World'

    setting = LorebookDAO.get_chat_setting(chat.id, lorebook.id)
    assert setting.turn == 1
    assert sorted(record['entry_id'] for record in setting.activated_entries) == ['0', '1']
    assert lorebook_service.get_lorebook(lorebook.id).last_used is not None


def test_sticky_state_persists_between_scans(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)

    turns = [lorebook_service.scan_context_for_entries(chat.id, text) for text in ('storm', 'calm', 'calm')]

    assert [[entry.id for entry in result.activated_entries] for result in turns] == [['2'], ['2'], []]


def test_overrides_apply_to_scan(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id,
                                            overrides=ChatLorebookOverridesDTO(token_budget=0, recursive=False))
    result = lorebook_service.scan_context_for_entries(chat.id, 'a dragon appeared')
    assert result.activated_entries == []
    assert result.dropped_entries == ['0']

    reapplied = lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)
    assert reapplied.overrides == {}


def test_remove_lorebook_from_chat(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)
    lorebook_service.remove_lorebook_from_chat(chat.id, lorebook.id)

    assert lorebook_service.get_active_lorebooks(chat.id) == []
    assert lorebook_service.scan_context_for_entries(chat.id, 'dragon').activated_entries == []
    with pytest.raises(LorebookNotAppliedError):
        lorebook_service.remove_lorebook_from_chat(chat.id, lorebook.id)


def test_deleted_lorebook_is_not_scanned(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)
    lorebook_service.delete_lorebook(lorebook.id)
    assert lorebook_service.scan_context_for_entries(chat.id, 'dragon').activated_entries == []


def test_scan_chat_history(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)
    chat_service.add_message(MessageCreateDTO(chat_id=chat.id, role='user', content='the storm breaks'))
    chat_service.add_message(MessageCreateDTO(chat_id=chat.id, role='assistant', content='all is quiet'))

    assert lorebook_service.scan_chat_history(chat.id, history_depth=1).activated_entries == []
    result = lorebook_service.scan_chat_history(chat.id, history_depth=2)
    assert [entry.id for entry in result.activated_entries] == ['2']


def test_update_activated_entries(app, user_id, chat):
    lorebook = import_book(user_id)
    lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id)
    lorebook_service.update_activated_entries(chat.id, lorebook.id, [
        ActivationRecordDTO(entry_id='2', activated_at_turn=0, sticky=1)
    ])

    result = lorebook_service.scan_context_for_entries(chat.id, 'nothing happens')
    assert [entry.id for entry in result.activated_entries] == ['2']


def test_chat_ownership_and_existence(app, user_id, chat):
    lorebook = import_book(user_id)
    with pytest.raises(ChatNotFoundError):
        lorebook_service.apply_lorebook_to_chat('missing-chat', lorebook.id)
    with pytest.raises(UnauthorizedAccessError):
        lorebook_service.apply_lorebook_to_chat(chat.id, lorebook.id, user_id='intruder')
    with pytest.raises(ChatNotFoundError):
        lorebook_service.scan_context_for_entries('missing-chat', 'dragon')


def _single_entry_book(content, token_budget):
    return {
        'entries': {'0': {'uid': 0, 'key': ['go'], 'content': content}},
        'token_budget': token_budget,
    }


def test_lorebooks_share_one_budget_in_application_order(app, user_id, chat):
    first = import_book(user_id, file_name='First.json', data=_single_entry_book('First book lore', 30))
    second = import_book(user_id, file_name='Second.json', data=_single_entry_book('Other book lore', 30))
    lorebook_service.apply_lorebook_to_chat(chat.id, first.id)
    lorebook_service.apply_lorebook_to_chat(chat.id, second.id)

    result = lorebook_service.scan_context_for_entries(chat.id, 'go', size_function='chars')

    assert result.text == 'First book lore'
    assert len(result.text) <= 30
    assert result.total_tokens == len(result.text)
    assert [entry.lorebook_id for entry in result.activated_entries] == [first.id]
    assert result.dropped_entries == ['0']


def test_shared_budget_counts_separator_between_lorebooks(app, user_id, chat):
    first = import_book(user_id, file_name='First.json', data=_single_entry_book('First book lore', 31))
    second = import_book(user_id, file_name='Second.json', data=_single_entry_book('Other book lore', 31))
    lorebook_service.apply_lorebook_to_chat(chat.id, first.id)
    lorebook_service.apply_lorebook_to_chat(chat.id, second.id)

    result = lorebook_service.scan_context_for_entries(chat.id, 'go', size_function='chars')

    assert result.text == 'First book lore\nOther book lore'
    assert result.total_tokens == 31
    assert [entry.lorebook_id for entry in result.activated_entries] == [first.id, second.id]
    assert result.dropped_entries == []

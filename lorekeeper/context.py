import logging
import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class Context:
    size_function: str = 'estimate'
    history_depth: int = 4
    # one lock per chat id, turns within a chat are serialized
    chat_locks: Dict[str, threading.Lock] = field(default_factory=dict)
    chat_locks_guard: threading.Lock = field(default_factory=threading.Lock)

    log_level: int = logging.INFO

    def get_chat_lock(self, chat_id: str) -> threading.Lock:
        with self.chat_locks_guard:
            lock = self.chat_locks.get(chat_id)
            if lock is None:
                lock = threading.Lock()
                self.chat_locks[chat_id] = lock
            return lock

context = Context()

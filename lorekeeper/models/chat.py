import uuid
from datetime import datetime, timezone
from typing import List, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lorekeeper.constants import MessageRole
from lorekeeper.extensions import db


class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'

    id: Mapped[str] = mapped_column(db.String, primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id: Mapped[str] = mapped_column(db.String, db.ForeignKey('chats.id', ondelete='CASCADE'), nullable=False, index=True)
    position: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    role: Mapped[str] = mapped_column(db.String(50), nullable=False, default=MessageRole.NONE)
    content: Mapped[str] = mapped_column(db.Text, nullable=False, default='')
    creation_time: Mapped[datetime] = mapped_column(db.DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'chat_id': self.chat_id,
            'position': self.position,
            'role': self.role,
            'content': self.content,
            'creation_time': self.creation_time.isoformat(),
        }


class Chat(db.Model):
    __tablename__ = 'chats'

    id: Mapped[str] = mapped_column(db.String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(db.String, nullable=True, index=True)
    session_id: Mapped[str] = mapped_column(db.String, nullable=True, index=True)
    creation_time: Mapped[datetime] = mapped_column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    modification_time: Mapped[datetime] = mapped_column(db.DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), index=True)
    messages: Mapped[List[ChatMessage]] = relationship(
        'ChatMessage',
        backref='chat',
        lazy='select',
        cascade='all, delete',
        order_by='ChatMessage.position'
    )
    lorebook_settings: Mapped[List['LorebookChatSetting']] = relationship(
        'LorebookChatSetting',
        cascade='all, delete',
        lazy='select'
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'user_id': self.user_id,
            'session_id': self.session_id,
            'creation_time': self.creation_time.isoformat(),
            'modification_time': self.modification_time.isoformat(),
        }

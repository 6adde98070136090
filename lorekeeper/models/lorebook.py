import uuid
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lorekeeper.extensions import db


class Lorebook(db.Model):
    __tablename__ = 'lorebooks'

    id: Mapped[str] = mapped_column(db.String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[Optional[str]] = mapped_column(db.String, nullable=True, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(db.String, nullable=True, index=True)
    name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    format: Mapped[str] = mapped_column(db.String(50), nullable=False)
    version: Mapped[Optional[str]] = mapped_column(db.String(50), nullable=True)
    entries: Mapped[List[Dict[str, Any]]] = mapped_column(db.JSON, nullable=False, default=list)
    settings: Mapped[Dict[str, Any]] = mapped_column(db.JSON, nullable=False, default=dict)
    original_data: Mapped[Optional[Any]] = mapped_column(db.JSON, nullable=True)
    entry_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True, index=True)
    imported_at: Mapped[datetime] = mapped_column(db.DateTime, default=lambda: datetime.now(timezone.utc), index=True)
    last_used: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    chat_settings: Mapped[List['LorebookChatSetting']] = relationship(
        'LorebookChatSetting',
        back_populates='lorebook',
        cascade='all, delete',
        lazy='select'
    )

    def is_owned_by(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> bool:
        if user_id is not None and self.user_id != user_id:
            return False
        if session_id is not None and self.session_id != session_id:
            return False
        return True


class LorebookChatSetting(db.Model):
    __tablename__ = 'lorebook_chat_settings'

    id: Mapped[str] = mapped_column(db.String, primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id: Mapped[str] = mapped_column(db.String, db.ForeignKey('chats.id', ondelete='CASCADE'), nullable=False, index=True)
    lorebook_id: Mapped[str] = mapped_column(db.String, db.ForeignKey('lorebooks.id', ondelete='CASCADE'), nullable=False, index=True)
    applied_at: Mapped[datetime] = mapped_column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    overrides: Mapped[Dict[str, Any]] = mapped_column(db.JSON, nullable=False, default=dict)
    # sticky/cooldown state carried between turns
    activated_entries: Mapped[List[Dict[str, Any]]] = mapped_column(db.JSON, nullable=False, default=list)
    turn: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)

    lorebook: Mapped[Lorebook] = relationship('Lorebook', back_populates='chat_settings', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('chat_id', 'lorebook_id', name='lorebook_chat_unique'),
    )

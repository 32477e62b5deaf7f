"""Durable session snapshots and transcripts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from rose.core.db import json_dumps, json_loads, sqlite_connection

from .models import (
    CommunicationStyle,
    ConversationSession,
    MessageTurn,
    OrderDraft,
    PaymentProvider,
    PriceSensitivity,
    RelationshipContext,
    StepTag,
    UserProfile,
)


class SessionStore(ABC):
    """Abstract interface for persisting conversation sessions."""

    @abstractmethod
    def append_turn(self, turn: MessageTurn) -> None:
        """Persist a single conversational turn."""

    @abstractmethod
    def fetch_recent_turns(self, session_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        """Return the most recent turns for a session, oldest first."""

    @abstractmethod
    def save_session(self, session: ConversationSession) -> None:
        """Upsert step, draft and profile for a session."""

    @abstractmethod
    def load_session(self, session_id: str, history_limit: int = 20) -> ConversationSession | None:
        """Rebuild a session from its snapshot and recent turns."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove a session and its transcript."""

    @abstractmethod
    def iter_sessions(self) -> Iterable[str]:
        """Iterate over known session identifiers."""


class SQLiteSessionStore(SessionStore):
    """SQLite-backed session store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    product_id TEXT,
                    step TEXT NOT NULL,
                    resume_step TEXT,
                    draft TEXT,
                    last_order TEXT,
                    profile TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    metadata TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_messages_session_created
                    ON messages (session_id, created_at DESC);
                """
            )

    def append_turn(self, turn: MessageTurn) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO messages (session_id, role, content, created_at, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    turn.session_id,
                    turn.role,
                    turn.content,
                    turn.created_at.isoformat(),
                    json_dumps(turn.metadata),
                ),
            )

    def fetch_recent_turns(self, session_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT session_id, role, content, created_at, metadata
                FROM messages
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (session_id, limit),
            ).fetchall()

        turns = [
            MessageTurn(
                session_id=row["session_id"],
                role=row["role"],
                content=row["content"],
                created_at=datetime.fromisoformat(row["created_at"]),
                metadata=json_loads(row["metadata"], default={}),
            )
            for row in rows
        ]
        turns.reverse()
        return turns

    def save_session(self, session: ConversationSession) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO sessions (
                    session_id, product_id, step, resume_step, draft, last_order, profile, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    product_id=excluded.product_id,
                    step=excluded.step,
                    resume_step=excluded.resume_step,
                    draft=excluded.draft,
                    last_order=excluded.last_order,
                    profile=excluded.profile,
                    updated_at=excluded.updated_at
                """,
                (
                    session.session_id,
                    session.product_id,
                    session.step.value,
                    session.resume_step.value if session.resume_step else None,
                    json_dumps(draft_to_dict(session.draft)) if session.draft else None,
                    json_dumps(draft_to_dict(session.last_order)) if session.last_order else None,
                    json_dumps(profile_to_dict(session.profile)),
                    session.created_at.isoformat(),
                    session.last_activity.isoformat(),
                ),
            )

    def load_session(self, session_id: str, history_limit: int = 20) -> ConversationSession | None:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()

        if row is None:
            return None

        draft = json_loads(row["draft"])
        last_order = json_loads(row["last_order"])
        return ConversationSession(
            session_id=row["session_id"],
            product_id=row["product_id"],
            step=StepTag.parse(row["step"]) or StepTag.INITIAL,
            resume_step=StepTag.parse(row["resume_step"]),
            draft=draft_from_dict(draft) if draft else None,
            last_order=draft_from_dict(last_order) if last_order else None,
            profile=profile_from_dict(json_loads(row["profile"], default={})),
            history=list(self.fetch_recent_turns(session_id, limit=history_limit)),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_activity=datetime.fromisoformat(row["updated_at"]),
        )

    def delete(self, session_id: str) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))

    def iter_sessions(self) -> Iterable[str]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute("SELECT session_id FROM sessions ORDER BY session_id")
            return [row["session_id"] for row in rows]


def draft_to_dict(draft: OrderDraft) -> dict[str, Any]:
    return {
        "product_id": draft.product_id,
        "product_name": draft.product_name,
        "unit_price": draft.unit_price,
        "quantity": draft.quantity,
        "first_name": draft.first_name,
        "last_name": draft.last_name,
        "phone": draft.phone,
        "city": draft.city,
        "address": draft.address,
        "delivery_cost": draft.delivery_cost,
        "payment_provider": draft.payment_provider.value if draft.payment_provider else None,
        "known_address": draft.known_address,
        "finalized": draft.finalized,
        "order_ref": draft.order_ref,
    }


def draft_from_dict(data: dict[str, Any]) -> OrderDraft:
    provider = data.get("payment_provider")
    return OrderDraft(
        product_id=data["product_id"],
        product_name=data.get("product_name", ""),
        unit_price=int(data.get("unit_price", 0)),
        quantity=int(data.get("quantity", 1)),
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        phone=data.get("phone", ""),
        city=data.get("city", ""),
        address=data.get("address", ""),
        delivery_cost=int(data.get("delivery_cost", 0)),
        payment_provider=PaymentProvider(provider) if provider else None,
        known_address=bool(data.get("known_address", False)),
        finalized=bool(data.get("finalized", False)),
        order_ref=data.get("order_ref", ""),
    )


def profile_to_dict(profile: UserProfile) -> dict[str, Any]:
    return {
        "relationship": profile.relationship.value,
        "interests": list(profile.interests),
        "concerns": list(profile.concerns),
        "topics": list(profile.topics),
        "communication_style": profile.communication_style.value,
        "buying_signals": list(profile.buying_signals),
        "price_sensitivity": profile.price_sensitivity.value,
        "message_count": profile.message_count,
        "last_activity": profile.last_activity.isoformat() if profile.last_activity else None,
    }


def profile_from_dict(data: dict[str, Any]) -> UserProfile:
    last_activity = data.get("last_activity")
    return UserProfile(
        relationship=RelationshipContext(data.get("relationship", "unknown")),
        interests=list(data.get("interests", [])),
        concerns=list(data.get("concerns", [])),
        topics=list(data.get("topics", [])),
        communication_style=CommunicationStyle(data.get("communication_style", "friendly")),
        buying_signals=list(data.get("buying_signals", [])),
        price_sensitivity=PriceSensitivity(data.get("price_sensitivity", "standard")),
        message_count=int(data.get("message_count", 0)),
        last_activity=datetime.fromisoformat(last_activity) if last_activity else None,
    )

"""
Stores for users, forms and responses.

Two interchangeable backends expose the same methods:
- InMemoryRepository: dict-backed, for tests and local runs
- SQLiteRepository: durable, so forms and responses survive restarts
  without extra infrastructure

Users hold the Airtable tokens (identity/token store), forms hold their
field definitions and rules as validated models (form store), and
responses hold submitted answers verbatim (response store).
"""

import json
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from airform.core.schema import FormDefinition, FormResponse


class User(BaseModel):
    """An Airtable account connected through OAuth."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    airtable_user_id: str = Field(..., alias="airtableUserId")
    email: str | None = None
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    token_expires_at: datetime = Field(..., alias="tokenExpiresAt")


class InMemoryRepository:
    """In-memory store. Thread-safe for basic use."""

    def __init__(self):
        self._users: dict[str, User] = {}
        self._forms: dict[str, FormDefinition] = {}
        self._responses: dict[str, list[FormResponse]] = {}
        self._lock = threading.RLock()

    # --- Users ---

    def upsert_user(
        self,
        airtable_user_id: str,
        email: str | None,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> User:
        """Create the user for an Airtable account, or refresh its tokens."""
        with self._lock:
            for user in self._users.values():
                if user.airtable_user_id == airtable_user_id:
                    user.email = email
                    user.access_token = access_token
                    user.refresh_token = refresh_token
                    user.token_expires_at = expires_at
                    return user.model_copy()
            user = User(
                airtable_user_id=airtable_user_id,
                email=email,
                access_token=access_token,
                refresh_token=refresh_token,
                token_expires_at=expires_at,
            )
            self._users[user.id] = user
            return user.model_copy()

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.access_token = access_token
            user.refresh_token = refresh_token
            user.token_expires_at = expires_at
            return True

    # --- Forms ---

    def create_form(self, form: FormDefinition) -> FormDefinition:
        with self._lock:
            self._forms[form.id] = form.model_copy(deep=True)
        return form

    def get_form(self, form_id: str) -> FormDefinition | None:
        with self._lock:
            form = self._forms.get(form_id)
            return form.model_copy(deep=True) if form else None

    def list_forms(self, owner_id: str) -> list[FormDefinition]:
        """Return the owner's forms, oldest first."""
        with self._lock:
            forms = [f for f in self._forms.values() if f.owner_id == owner_id]
        return [f.model_copy(deep=True) for f in sorted(forms, key=lambda f: f.created_at)]

    def set_webhook_id(self, form_id: str, webhook_id: str) -> bool:
        with self._lock:
            form = self._forms.get(form_id)
            if form is None:
                return False
            form.webhook_id = webhook_id
            return True

    # --- Responses ---

    def add_response(self, response: FormResponse) -> FormResponse:
        with self._lock:
            self._responses.setdefault(response.form_id, []).append(response.model_copy(deep=True))
        return response

    def list_responses(self, form_id: str) -> list[FormResponse]:
        """Return a form's responses, newest first."""
        with self._lock:
            responses = list(self._responses.get(form_id, []))
        responses.sort(key=lambda r: r.submitted_at, reverse=True)
        return [r.model_copy(deep=True) for r in responses]


class SQLiteRepository:
    """SQLite-backed durable store with the same interface as InMemoryRepository."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.RLock()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    airtable_user_id TEXT NOT NULL UNIQUE,
                    email TEXT,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    token_expires_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS forms (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    form_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS forms_owner ON forms (owner_id);
                CREATE TABLE IF NOT EXISTS responses (
                    id TEXT PRIMARY KEY,
                    form_id TEXT NOT NULL,
                    airtable_record_id TEXT,
                    answers_json TEXT NOT NULL,
                    submitted_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS responses_form ON responses (form_id);
                """
            )
            conn.commit()

    # --- Users ---

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            airtable_user_id=row["airtable_user_id"],
            email=row["email"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=datetime.fromisoformat(row["token_expires_at"]),
        )

    def upsert_user(
        self,
        airtable_user_id: str,
        email: str | None,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> User:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT id FROM users WHERE airtable_user_id = ?",
                (airtable_user_id,),
            ).fetchone()
            user_id = row["id"] if row else uuid.uuid4().hex
            conn.execute(
                """
                INSERT OR REPLACE INTO users
                (id, airtable_user_id, email, access_token, refresh_token, token_expires_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    airtable_user_id,
                    email,
                    access_token,
                    refresh_token,
                    expires_at.isoformat(),
                ),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row)

    def get_user(self, user_id: str) -> User | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE users
                SET access_token = ?, refresh_token = ?, token_expires_at = ?
                WHERE id = ?
                """,
                (access_token, refresh_token, expires_at.isoformat(), user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    # --- Forms ---

    def create_form(self, form: FormDefinition) -> FormDefinition:
        with self._lock, self._connect() as conn:
            conn.execute(
                "INSERT INTO forms (id, owner_id, form_json, created_at) VALUES (?, ?, ?, ?)",
                (
                    form.id,
                    form.owner_id,
                    form.model_dump_json(by_alias=True),
                    form.created_at.isoformat(),
                ),
            )
            conn.commit()
        return form

    def get_form(self, form_id: str) -> FormDefinition | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT form_json FROM forms WHERE id = ?", (form_id,)).fetchone()
        return FormDefinition.model_validate_json(row["form_json"]) if row else None

    def list_forms(self, owner_id: str) -> list[FormDefinition]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT form_json FROM forms WHERE owner_id = ? ORDER BY created_at",
                (owner_id,),
            ).fetchall()
        return [FormDefinition.model_validate_json(r["form_json"]) for r in rows]

    def set_webhook_id(self, form_id: str, webhook_id: str) -> bool:
        form = self.get_form(form_id)
        if form is None:
            return False
        form.webhook_id = webhook_id
        with self._lock, self._connect() as conn:
            conn.execute(
                "UPDATE forms SET form_json = ? WHERE id = ?",
                (form.model_dump_json(by_alias=True), form_id),
            )
            conn.commit()
        return True

    # --- Responses ---

    def add_response(self, response: FormResponse) -> FormResponse:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO responses
                (id, form_id, airtable_record_id, answers_json, submitted_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    response.id,
                    response.form_id,
                    response.airtable_record_id,
                    json.dumps(response.answers, ensure_ascii=False),
                    response.submitted_at.isoformat(),
                ),
            )
            conn.commit()
        return response

    def list_responses(self, form_id: str) -> list[FormResponse]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM responses WHERE form_id = ? ORDER BY submitted_at DESC",
                (form_id,),
            ).fetchall()
        return [
            FormResponse(
                id=r["id"],
                form_id=r["form_id"],
                airtable_record_id=r["airtable_record_id"],
                answers=json.loads(r["answers_json"]),
                submitted_at=datetime.fromisoformat(r["submitted_at"]),
            )
            for r in rows
        ]

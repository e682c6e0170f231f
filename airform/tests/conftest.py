"""
Shared test fixtures and fakes for the AirForm test suite.

Provides a sample job-application form with conditional fields, plus
in-process stand-ins for the Airtable client and token provider so
tests never touch the network.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from airform.core.schema import FormDefinition
from airform.core.storage import InMemoryRepository


def job_form_data(**overrides) -> dict:
    """Raw (camelCase) payload of a form with chained visibility rules."""
    data = {
        "id": "form1",
        "ownerId": "",
        "baseId": "appBase",
        "tableId": "tblApplicants",
        "title": "Job Application",
        "fields": [
            {"fieldId": "name", "label": "Full name", "type": "singleLineText", "required": True},
            {
                "fieldId": "role",
                "label": "Role",
                "type": "singleSelect",
                "options": ["Engineer", "Designer", "Manager", "Intern"],
                "required": True,
            },
            {
                "fieldId": "skills",
                "label": "Skills",
                "type": "multipleSelects",
                "options": ["Go", "Rust", "Python"],
                "required": True,
                "visibilityRule": {
                    "logic": "AND",
                    "conditions": [
                        {"questionKey": "role", "operator": "equals", "value": "Engineer"},
                    ],
                },
            },
            {
                "fieldId": "go_project",
                "label": "Go project",
                "type": "multilineText",
                "required": True,
                "visibilityRule": {
                    "logic": "AND",
                    "conditions": [
                        {"questionKey": "skills", "operator": "contains", "value": "Go"},
                    ],
                },
            },
            {
                "fieldId": "mentor",
                "label": "Mentor",
                "type": "singleLineText",
                "required": False,
                "visibilityRule": {
                    "logic": "OR",
                    "conditions": [
                        {"questionKey": "role", "operator": "equals", "value": "Intern"},
                        {"questionKey": "role", "operator": "equals", "value": "Designer"},
                    ],
                },
            },
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def job_form() -> FormDefinition:
    return FormDefinition(**job_form_data())


def future(seconds: int = 3600) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


def past(seconds: int = 60) -> datetime:
    return datetime.now(timezone.utc) - timedelta(seconds=seconds)


class FakeAirtableClient:
    """Records calls and returns canned metadata instead of calling Airtable."""

    def __init__(self, access_token: str = "tok", fail_with: Exception | None = None):
        self.access_token = access_token
        self.fail_with = fail_with
        self.records: list[tuple[str, str, dict[str, Any]]] = []
        self.webhooks: list[tuple[str, str]] = []
        self.bases = [{"id": "appBase", "name": "Hiring", "permissionLevel": "create"}]
        self.tables = [
            {
                "id": "tblApplicants",
                "name": "Applicants",
                "fields": [
                    {"id": "fldName", "name": "Name", "type": "singleLineText"},
                    {
                        "id": "fldRole",
                        "name": "Role",
                        "type": "singleSelect",
                        "options": {"choices": [{"id": "sel1", "name": "Engineer"}]},
                    },
                    {"id": "fldScore", "name": "Score", "type": "formula"},
                ],
            }
        ]

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def whoami(self):
        self._maybe_fail()
        return {"id": "usrAirtable1", "email": "owner@example.com"}

    async def list_bases(self):
        self._maybe_fail()
        return self.bases

    async def list_tables(self, base_id: str):
        self._maybe_fail()
        return self.tables

    async def create_record(self, base_id: str, table_id: str, fields: dict[str, Any]) -> str:
        self._maybe_fail()
        self.records.append((base_id, table_id, fields))
        return f"rec{len(self.records)}"

    async def create_webhook(self, base_id: str, notification_url: str) -> str:
        self._maybe_fail()
        self.webhooks.append((base_id, notification_url))
        return "ach1"


class StaticTokenProvider:
    """Token provider that hands back the stored token unchanged."""

    async def get_access_token(self, user) -> str:
        return user.access_token


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def owner(repository):
    return repository.upsert_user(
        airtable_user_id="usrAirtable1",
        email="owner@example.com",
        access_token="tok-owner",
        refresh_token="refresh-owner",
        expires_at=future(),
    )

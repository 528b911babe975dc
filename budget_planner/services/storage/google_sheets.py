"""
Google Sheets Storage Implementation

Plans from every user share one worksheet, one plan per row, with a
user_id column that scopes every read and write. Usernames live in a
second worksheet and audit events in a third.

TRADEOFFS:
- Not suitable for high-volume data (fine for household budgets)
- No transactions: a whole row is rewritten on update, last writer wins
- Filtering happens in Python after reading the sheet
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials

from budget_planner.config import GoogleSheetsSettings, get_settings
from budget_planner.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import Expense, PlanDraft, SavedPlan
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    PlanStorageInterface,
    ProfileStorageInterface,
    StorageError,
    require_user_id,
)


# Column mappings for Plans sheet
PLAN_COLUMNS = [
    "id",
    "user_id",
    "name",
    "created_at",
    "income",
    "expenses_json",
    "plan_text",
    "user_notes",
    "owner_id",
    "collaborators_json",
    "shared",
]

PROFILE_COLUMNS = [
    "user_id",
    "username",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates the worksheets it needs.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_plans_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.plans_sheet_name, PLAN_COLUMNS, 1000)

    def get_profiles_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.profiles_sheet_name, PROFILE_COLUMNS, 200)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsPlanStorage(PlanStorageInterface, ProfileStorageInterface):
    """
    Google Sheets implementation of plan and profile storage.

    Expenses and collaborators are JSON-serialized into single cells.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _plan_to_row(self, user_id: str, plan: SavedPlan) -> list:
        """Convert a SavedPlan to a spreadsheet row."""
        return [
            plan.id,
            user_id,
            plan.name,
            plan.created_at.isoformat(),
            plan.income,
            json.dumps([expense.model_dump() for expense in plan.expenses]),
            plan.plan_text,
            plan.user_notes,
            plan.owner_id or "",
            json.dumps(plan.collaborators),
            str(plan.shared),
        ]

    def _row_to_plan(self, row: list) -> SavedPlan:
        """Convert a spreadsheet row to a SavedPlan."""
        expenses_json = _safe_get(row, 5)
        collaborators_json = _safe_get(row, 9)
        return SavedPlan(
            id=_safe_get(row, 0),
            name=_safe_get(row, 2),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
            income=_safe_get(row, 4),
            expenses=[Expense(**e) for e in json.loads(expenses_json)] if expenses_json else [],
            plan_text=_safe_get(row, 6),
            user_notes=_safe_get(row, 7),
            owner_id=_safe_get(row, 8) or None,
            collaborators=json.loads(collaborators_json) if collaborators_json else [],
            shared=_safe_get(row, 10).lower() == "true",
        )

    def _user_rows(self, sheet: gspread.Worksheet, user_id: str) -> list[tuple[int, list]]:
        """(sheet row number, row) for each of the user's plans."""
        all_rows = sheet.get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is header
            if row and len(row) > 1 and row[1] == user_id
        ]

    async def list_plans(self, identity: UserIdentity) -> list[SavedPlan]:
        user_id = require_user_id(identity)
        try:
            sheet = self._client.get_plans_sheet()
            plans = []
            for _, row in self._user_rows(sheet, user_id):
                try:
                    plans.append(self._row_to_plan(row))
                except Exception:
                    continue  # Skip malformed rows
            return plans
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list plans: {e}")

    async def get_plan(
        self,
        identity: UserIdentity,
        plan_id: str,
    ) -> Optional[SavedPlan]:
        for plan in await self.list_plans(identity):
            if plan.id == plan_id:
                return plan
        return None

    async def create_plan(
        self,
        identity: UserIdentity,
        draft: PlanDraft,
    ) -> SavedPlan:
        user_id = require_user_id(identity)
        plan = SavedPlan(**draft.model_dump(exclude={"id", "created_at"}))
        try:
            sheet = self._client.get_plans_sheet()
            sheet.append_row(self._plan_to_row(user_id, plan), value_input_option="RAW")
            return plan
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save plan: {e}")

    async def update_plan(
        self,
        identity: UserIdentity,
        plan: SavedPlan,
    ) -> SavedPlan:
        user_id = require_user_id(identity)
        try:
            sheet = self._client.get_plans_sheet()
            for idx, row in self._user_rows(sheet, user_id):
                if row[0] == plan.id:
                    existing = self._row_to_plan(row)
                    replacement = plan.model_copy(
                        update={"id": existing.id, "created_at": existing.created_at}
                    )
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[self._plan_to_row(user_id, replacement)],
                        value_input_option="RAW",
                    )
                    return replacement

            raise NotFoundError(f"Plan not found: {plan.id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update plan: {e}")

    async def delete_plan(self, identity: UserIdentity, plan_id: str) -> bool:
        user_id = require_user_id(identity)
        try:
            sheet = self._client.get_plans_sheet()
            for idx, row in self._user_rows(sheet, user_id):
                if row[0] == plan_id:
                    sheet.delete_rows(idx)
                    return True
            return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete plan: {e}")

    async def get_username(self, identity: UserIdentity) -> Optional[str]:
        user_id = require_user_id(identity)
        try:
            sheet = self._client.get_profiles_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == user_id:
                    return _safe_get(row, 1) or None
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read profile: {e}")

    async def save_username(self, identity: UserIdentity, username: str) -> None:
        user_id = require_user_id(identity)
        try:
            sheet = self._client.get_profiles_sheet()
            for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
                if row and row[0] == user_id:
                    sheet.update_cell(idx, 2, username.strip())
                    return
            sheet.append_row([user_id, username.strip()], value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        correlation_id = _safe_get(row, 7)
        details = _safe_get(row, 9)
        return AuditEvent(
            event_id=_safe_get(row, 0),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            user_id=_safe_get(row, 6) or None,
            correlation_id=correlation_id or None,
            description=_safe_get(row, 8),
            details=json.loads(details) if details else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_row(), value_input_option="RAW")
            return True
        except Exception:
            # The audit logger reports the failure; never break the main flow
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and row[0]:
                    try:
                        events.append(self._row_to_event(row))
                    except Exception:
                        continue

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

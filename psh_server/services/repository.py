"""Device registry and push history backed by the relational store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from psh_server.exceptions import HistoryWriteError, StorageUnavailableError
from psh_server.models.notification import DeviceRecord
from psh_server.models.push import PushDetailRecord, PushRecord, StatsResponse
from psh_server.models.tables import DeviceRow, PushRow

if TYPE_CHECKING:
    from psh_server.db import Database

logger = logging.getLogger(__name__)

_UPSERT_BUILDERS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class PushRepository:
    """Reads registered devices and appends push history."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def _insert(self) -> Any:
        try:
            return _UPSERT_BUILDERS[self.database.dialect](DeviceRow)
        except KeyError:
            msg = f"Device upsert is not supported on {self.database.dialect}"
            raise StorageUnavailableError(msg) from None

    def _registration_order(self) -> list[Any]:
        # Re-registering keeps a device's rowid, so rowid is first-registration order
        if self.database.dialect == "sqlite":
            return [literal_column("rowid")]
        return [DeviceRow.created_at, DeviceRow.device_token]

    async def upsert_device(
        self,
        device_token: str,
        installation_id: str,
        environment: str,
        device_name: str | None = None,
        device_type: str | None = None,
        os_version: str | None = None,
        app_version: str | None = None,
    ) -> None:
        """
        Insert a device or refresh the metadata of an existing token.

        Raises:
            StorageUnavailableError: If the write fails
        """
        values = {
            "device_token": device_token,
            "installation_id": installation_id,
            "environment": environment,
            "device_name": device_name,
            "device_type": device_type,
            "os_version": os_version,
            "app_version": app_version,
        }
        stmt = self._insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeviceRow.device_token],
            set_={
                **{key: stmt.excluded[key] for key in values if key != "device_token"},
                "updated_at": func.current_timestamp(),
            },
        )

        try:
            async with self.database.session() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                f"Failed to register device: {e}",
                context={"token_suffix": device_token[-6:]},
            ) from e

        logger.info(
            "Device registered",
            extra={
                "token_suffix": device_token[-6:],
                "installation_id": installation_id,
                "environment": environment,
            },
        )

    async def list_devices(self) -> list[DeviceRecord]:
        """
        Enumerate every registered device for dispatch.

        Raises:
            StorageUnavailableError: If the query fails
        """
        stmt = select(DeviceRow.device_token, DeviceRow.environment).order_by(*self._registration_order())
        try:
            async with self.database.session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database error: {e}") from e

        return [DeviceRecord(device_token=token, environment=env) for token, env in rows]

    async def record_push(
        self,
        device_token: str,
        apns_id: str | None,
        title: str | None,
        body: str | None,
        payload: str | None,
    ) -> int:
        """
        Append a push history record.

        Returns:
            The new record's id

        Raises:
            HistoryWriteError: If the insert fails
        """
        row = PushRow(
            device_token=device_token,
            apns_id=apns_id,
            title=title,
            body=body,
            payload=payload,
        )
        try:
            async with self.database.session() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise HistoryWriteError(
                f"Failed to record push: {e}",
                context={"token_suffix": device_token[-6:]},
            ) from e
        return row.id

    async def stats(self) -> StatsResponse:
        def count_devices(environment: str | None = None) -> Any:
            stmt = select(func.count()).select_from(DeviceRow)
            if environment is not None:
                stmt = stmt.where(DeviceRow.environment == environment)
            return stmt

        try:
            async with self.database.session() as session:
                total = await session.scalar(count_devices())
                sandbox = await session.scalar(count_devices("sandbox"))
                production = await session.scalar(count_devices("production"))
                pushes = await session.scalar(select(func.count()).select_from(PushRow))
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database error: {e}") from e

        return StatsResponse(
            total_devices=total or 0,
            sandbox_devices=sandbox or 0,
            production_devices=production or 0,
            total_pushes=pushes or 0,
        )

    async def list_pushes(self, installation_id: str) -> list[PushRecord]:
        """Return push history for every token of an installation, newest first."""
        stmt = (
            select(PushRow)
            .join(DeviceRow, PushRow.device_token == DeviceRow.device_token)
            .where(DeviceRow.installation_id == installation_id)
            .order_by(PushRow.sent_at.desc(), PushRow.id.desc())
        )
        try:
            async with self.database.session() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database error: {e}") from e

        return [PushRecord.model_validate(row) for row in rows]

    async def get_push(self, push_id: int) -> PushDetailRecord | None:
        stmt = (
            select(
                PushRow.id,
                PushRow.apns_id,
                PushRow.title,
                PushRow.body,
                PushRow.payload,
                PushRow.sent_at,
                PushRow.device_token,
                DeviceRow.device_name,
                DeviceRow.device_type,
                DeviceRow.environment,
            )
            .join(DeviceRow, PushRow.device_token == DeviceRow.device_token, isouter=True)
            .where(PushRow.id == push_id)
        )
        try:
            async with self.database.session() as session:
                row = (await session.execute(stmt)).first()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database error: {e}") from e

        if row is None:
            return None
        return PushDetailRecord.model_validate(dict(row._mapping))

    async def ping(self) -> None:
        """Run a trivial query to verify the store is reachable."""
        try:
            async with self.database.session() as session:
                await session.execute(select(1))
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database error: {e}") from e

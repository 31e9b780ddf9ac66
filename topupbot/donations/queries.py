"""All queries related to the donation delivery log.

Using the DonationQueries class as a repository for delivery-related queries.
"""

from __future__ import annotations

import logging

import aiosqlite
from aiosqlite import Connection

from .types import DeliveryLog, DeliveryStatus, DonorTotal

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class DonationQueries:
    """Repository for delivery log queries."""

    CREATE_TOPUP_LOGS_TABLE = """
        CREATE TABLE IF NOT EXISTS topup_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            ticket_id TEXT NOT NULL,
            discord_id TEXT NOT NULL,
            discord_username TEXT NOT NULL,
            player_id TEXT NOT NULL,
            category TEXT NOT NULL,
            item_id TEXT NOT NULL,
            item_name TEXT NOT NULL,
            amount REAL NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending', -- pending, completed, failed
            rcon_executed INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed_at TIMESTAMP
        );
        """

    CREATE_TICKET_INDEX = """
        CREATE INDEX IF NOT EXISTS idx_topup_logs_ticket_id ON topup_logs (ticket_id);
        """

    LOG_COLUMNS = """
        id, ticket_id, discord_id, discord_username, player_id, category, item_id,
        item_name, amount, status, rcon_executed, error_message, created_at,
        completed_at
        """

    INSERT_LOG = """
        INSERT INTO topup_logs
        (ticket_id, discord_id, discord_username, player_id, category, item_id,
         item_name, amount, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

    GET_LOG_BY_TICKET_ID = f"""
        SELECT {LOG_COLUMNS} FROM topup_logs
        WHERE ticket_id = ? ORDER BY id DESC LIMIT 1
        """  # noqa: S608

    GET_RECENT_LOGS = f"""
        SELECT {LOG_COLUMNS} FROM topup_logs ORDER BY id DESC LIMIT ?
        """  # noqa: S608

    GET_TOP_DONORS = """
        SELECT discord_id, MAX(discord_username), SUM(amount), COUNT(*)
        FROM topup_logs
        WHERE status = 'completed'
        GROUP BY discord_id
        ORDER BY SUM(amount) DESC, COUNT(*) DESC
        LIMIT ?
        """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    @classmethod
    async def create(cls, db_path: str) -> DonationQueries:
        """Create a DonationQueries instance with an aiosqlite connection.

        :param db_path: Path to the SQLite database file
        :return: Configured DonationQueries instance
        """
        connection = await aiosqlite.connect(db_path)
        return cls(connection)

    async def close(self) -> None:
        """Close the database connection."""
        await self.connection.close()

    async def initialize_tables(self) -> None:
        """Create the delivery log table if it does not exist.

        This method should be called during application startup.
        """
        try:
            await self.connection.execute(DonationQueries.CREATE_TOPUP_LOGS_TABLE)
            await self.connection.execute(DonationQueries.CREATE_TICKET_INDEX)
            await self.connection.commit()
        except aiosqlite.Error:
            await self.connection.rollback()
            LOGGER.exception("Error initializing delivery log tables")
            raise

    async def log_delivery(  # noqa: PLR0913
        self,
        ticket_id: str,
        discord_id: str,
        discord_username: str,
        player_id: str,
        category: str,
        item_id: str,
        item_name: str,
        amount: float,
        status: DeliveryStatus = DeliveryStatus.PENDING,
    ) -> int:
        """Insert a delivery log entry.

        :return: The id of the new entry
        """
        cursor = await self.connection.execute(
            DonationQueries.INSERT_LOG,
            (
                ticket_id,
                discord_id,
                discord_username,
                player_id,
                category,
                item_id,
                item_name,
                amount,
                str(status),
            ),
        )
        await self.connection.commit()
        LOGGER.debug("Delivery log %d created for ticket %s", cursor.lastrowid, ticket_id)
        return cursor.lastrowid

    async def update_status(
        self,
        log_id: int,
        status: DeliveryStatus,
        *,
        rcon_executed: bool | None = None,
        error_message: str | None = None,
    ) -> None:
        """Update the status of a delivery log entry.

        :param log_id: Id of the entry
        :param status: The new status
        :param rcon_executed: Whether the reward reached the game server
        :param error_message: Error of a failed delivery
        """
        fields = ["status = ?"]
        values: list[object] = [str(status)]

        if status == DeliveryStatus.COMPLETED:
            fields.append("completed_at = CURRENT_TIMESTAMP")
        if rcon_executed is not None:
            fields.append("rcon_executed = ?")
            values.append(int(rcon_executed))
        if error_message is not None:
            fields.append("error_message = ?")
            values.append(error_message)

        values.append(log_id)
        await self.connection.execute(
            f"UPDATE topup_logs SET {', '.join(fields)} WHERE id = ?",  # noqa: S608
            values,
        )
        await self.connection.commit()

    async def get_by_ticket_id(self, ticket_id: str) -> DeliveryLog | None:
        """Return the latest delivery log entry of a ticket."""
        cursor = await self.connection.execute(
            DonationQueries.GET_LOG_BY_TICKET_ID,
            (ticket_id,),
        )
        row = await cursor.fetchone()
        return DonationQueries._to_log(row) if row else None

    async def recent_deliveries(self, limit: int = 20) -> list[DeliveryLog]:
        """Return the latest delivery log entries, newest first."""
        cursor = await self.connection.execute(DonationQueries.GET_RECENT_LOGS, (limit,))
        rows = await cursor.fetchall()
        return [DonationQueries._to_log(row) for row in rows]

    async def top_donors(self, limit: int = 10) -> list[DonorTotal]:
        """Return the donors with the highest completed donation totals."""
        cursor = await self.connection.execute(DonationQueries.GET_TOP_DONORS, (limit,))
        rows = await cursor.fetchall()
        return [
            DonorTotal(
                discord_id=discord_id,
                discord_username=discord_username,
                total_amount=total_amount or 0,
                donation_count=donation_count,
            )
            for discord_id, discord_username, total_amount, donation_count in rows
        ]

    @staticmethod
    def _to_log(row: tuple) -> DeliveryLog:
        (
            log_id,
            ticket_id,
            discord_id,
            discord_username,
            player_id,
            category,
            item_id,
            item_name,
            amount,
            status,
            rcon_executed,
            error_message,
            created_at,
            completed_at,
        ) = row
        return DeliveryLog(
            id=log_id,
            ticket_id=ticket_id,
            discord_id=discord_id,
            discord_username=discord_username,
            player_id=player_id,
            category=category,
            item_id=item_id,
            item_name=item_name,
            amount=amount,
            status=status,
            rcon_executed=bool(rcon_executed),
            error_message=error_message,
            created_at=created_at,
            completed_at=completed_at,
        )

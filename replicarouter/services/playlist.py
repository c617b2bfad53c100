"""Playlist rows written for scheduled commercial breaks."""

from __future__ import annotations

import asyncio
import getpass
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import PureWindowsPath

from ..results import FanOutResult
from ..router import DatabaseRouter
from ..rows import format_clock
from .channels import channel_database

LOG = logging.getLogger(__name__)

TABLE_NAME = "playlist"
PROGRAMME_TYPE = "COMMERCIALS"

_SAVE_UPDATE_SQL = (
    f"UPDATE {TABLE_NAME} SET Programme = %(Programme)s, Title = %(Title)s, Duration = %(Duration)s, "
    "StopTime = %(StopTime)s, MainPath = %(MainPath)s, LoginUser = %(LoginUser)s, "
    "UserName = %(UserName)s, MobileNo = %(MobileNo)s, LastUpdate = NOW() "
    f"WHERE ProgType = '{PROGRAMME_TYPE}' AND TxDate = %(TxDate)s AND TxTime = %(TxTime)s "
    "AND MainPath = %(OldMainPath)s"
)
_SAVE_INSERT_SQL = (
    f"INSERT INTO {TABLE_NAME} (Mode, TxTime, TxDate, Validity, Programme, Title, Duration, StopTime, "
    "ProgType, MainPath, LoginUser, UserName, MobileNo, LastUpdate) "
    "VALUES (2, %(TxTime)s, %(TxDate)s, %(Validity)s, %(Programme)s, %(Title)s, %(Duration)s, "
    f"%(StopTime)s, '{PROGRAMME_TYPE}', %(MainPath)s, %(LoginUser)s, %(UserName)s, %(MobileNo)s, NOW())"
)
_MOVE_SQL = (
    f"UPDATE {TABLE_NAME} SET TxDate = %(NewTxDate)s, TxTime = %(NewTxTime)s, Validity = %(Validity)s, "
    "Programme = %(Programme)s, Title = %(Title)s, Duration = %(Duration)s, StopTime = %(StopTime)s, "
    "MainPath = %(NewMainPath)s, LoginUser = %(LoginUser)s, UserName = %(UserName)s, "
    "MobileNo = %(MobileNo)s, LastUpdate = NOW() "
    f"WHERE ProgType = '{PROGRAMME_TYPE}' AND MainPath = %(OldMainPath)s"
)
_DELETE_SQL = f"DELETE FROM {TABLE_NAME} WHERE ProgType = '{PROGRAMME_TYPE}' AND MainPath = %(MainPath)s"
_EXISTS_SQL = (
    f"SELECT COUNT(*) FROM {TABLE_NAME} "
    f"WHERE ProgType = '{PROGRAMME_TYPE}' AND TxDate = %(TxDate)s AND TxTime = %(TxTime)s"
)


@dataclass(frozen=True, slots=True)
class PlaylistEntry:
    """One scheduled break as stored in the channel playlist.

    ``main_path`` is the schedule file the playout system reads; ``title`` is
    usually the first spot in the break.
    """

    main_path: str
    tx_date: date
    tx_time: timedelta
    valid_until: date
    programme: str
    title: str = ""
    duration: timedelta = timedelta(0)

    @property
    def file_name(self) -> str:
        return PureWindowsPath(self.main_path).name


class PlaylistService:
    """Keeps playlist rows in step with saved, moved and deleted schedules."""

    def __init__(self, router: DatabaseRouter, database: str, *, login_user: str | None = None) -> None:
        self._router = router
        self._database = database
        self._login_user = login_user if login_user is not None else getpass.getuser()

    @classmethod
    def for_channel(cls, router: DatabaseRouter, channel_name: str, **kwargs: object) -> PlaylistService:
        return cls(router, channel_database(channel_name), **kwargs)  # type: ignore[arg-type]

    async def save_playlist_row(
        self,
        entry: PlaylistEntry,
        user_name: str | None = None,
        mobile_no: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """Update the row for this break, inserting it on servers that lack it."""

        common = self._common_parameters(entry, user_name, mobile_no)
        update_parameters = dict(
            common,
            MainPath=entry.main_path,
            OldMainPath=entry.main_path,
            TxDate=entry.tx_date,
            TxTime=format_clock(entry.tx_time),
        )
        insert_parameters = dict(
            common,
            MainPath=entry.main_path,
            TxDate=entry.tx_date,
            TxTime=format_clock(entry.tx_time),
            Validity=entry.valid_until,
        )
        result = await self._router.write_self_healing(
            self._database,
            _SAVE_UPDATE_SQL,
            update_parameters,
            _SAVE_INSERT_SQL,
            insert_parameters,
            cancel=cancel,
        )
        if result.any_succeeded:
            LOG.info("Saved playlist row for %s", entry.file_name, extra={"database": self._database})
        return result

    async def update_playlist_path(
        self,
        old_path: str,
        entry: PlaylistEntry,
        user_name: str | None = None,
        mobile_no: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> FanOutResult:
        """Move the row stored under ``old_path``; saves a fresh row when no server accepts the move."""

        parameters = dict(
            self._common_parameters(entry, user_name, mobile_no),
            NewTxDate=entry.tx_date,
            NewTxTime=format_clock(entry.tx_time),
            Validity=entry.valid_until,
            NewMainPath=entry.main_path,
            OldMainPath=old_path,
        )
        result = await self._router.write_fan_out(self._database, _MOVE_SQL, parameters, cancel=cancel)
        if result.any_succeeded:
            LOG.info(
                "Updated playlist path: %s -> %s",
                PureWindowsPath(old_path).name,
                entry.file_name,
                extra={"database": self._database},
            )
            return result
        LOG.warning("Playlist path update failed everywhere; saving as a new row", extra={"database": self._database})
        return await self.save_playlist_row(entry, user_name, mobile_no, cancel=cancel)

    async def delete_playlist_row(self, main_path: str, *, cancel: asyncio.Event | None = None) -> FanOutResult:
        result = await self._router.write_fan_out(self._database, _DELETE_SQL, {"MainPath": main_path}, cancel=cancel)
        if result.any_succeeded:
            LOG.info("Deleted playlist row for %s", PureWindowsPath(main_path).name)
        return result

    async def playlist_row_exists(
        self,
        tx_date: date,
        tx_time: timedelta,
        *,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        """True only when a server answered with a positive count."""

        result = await self._router.read_scalar(
            self._database,
            _EXISTS_SQL,
            {"TxDate": tx_date, "TxTime": format_clock(tx_time)},
            converter=int,
            cancel=cancel,
        )
        return bool(result.success and result.data and result.data > 0)

    def _common_parameters(
        self,
        entry: PlaylistEntry,
        user_name: str | None,
        mobile_no: str | None,
    ) -> dict[str, object]:
        return {
            "Programme": entry.programme,
            "Title": entry.title,
            "Duration": format_clock(entry.duration),
            "StopTime": entry.duration.total_seconds(),
            "LoginUser": self._login_user,
            "UserName": user_name or "",
            "MobileNo": mobile_no or "",
        }


__all__ = ["PROGRAMME_TYPE", "PlaylistEntry", "PlaylistService"]

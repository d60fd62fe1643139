"""Report session: one run's ingestion lifecycle around a results store."""

import json
import logging
import shutil
import tempfile
import uuid
import zipfile
from pathlib import Path
from typing import Literal

from boostsec.results_store.classify import StatusClassifier
from boostsec.results_store.errors import HistoryIntegrityError, SessionStateError
from boostsec.results_store.events import RealtimeBus
from boostsec.results_store.history.base import History, create_history
from boostsec.results_store.history.local import LocalHistory
from boostsec.results_store.models.dump import StoreDump
from boostsec.results_store.models.history import HistoryDataPoint
from boostsec.results_store.models.known import KnownTestFailure
from boostsec.results_store.models.store_config import StoreConfig
from boostsec.results_store.readers import ResultsReader, default_readers
from boostsec.results_store.result_file import PathResultFile, ResultFile
from boostsec.results_store.store import ResultsStore

logger = logging.getLogger(__name__)

INIT_REQUIRED = "report is not initialised. Call the start() method first."
ALREADY_STARTED = "the report is already started"
ALREADY_STOPPED = (
    "the report is already stopped, the restart isn't supported at the moment"
)

DUMP_ENTRY_SUFFIX = ".json"

ExecutionStage = Literal["init", "running", "done"]


def dump_archive_path(dump: Path) -> Path:
    """Return the archive path for a dump target, with a .zip suffix."""
    if dump.suffix == ".zip":
        return dump
    return dump.with_name(f"{dump.name}.zip")


def _dump_entry_names() -> set[str]:
    return {
        f"{field.alias or name}{DUMP_ENTRY_SUFFIX}"
        for name, field in StoreDump.model_fields.items()
    }


class ReportSession:
    """Owns the bus, the history log, the store and the readers of a run.

    The session goes through three stages: ``init``, ``running`` after
    ``start()`` and ``done`` after ``done()``. Results can only be read
    while running.
    """

    def __init__(
        self,
        config: StoreConfig,
        readers: list[ResultsReader] | None = None,
        known: list[KnownTestFailure] | None = None,
        history: History | None = None,
        classifier: StatusClassifier | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Store configuration
            readers: Readers tried in order for every result file
            known: Known failures
            history: History log, built from the configuration when omitted
            classifier: Transition and flakiness classifier

        """
        self.config = config
        self.report_uuid = str(uuid.uuid4())
        self.bus = RealtimeBus()
        self.history = history
        if self.history is None and config.history_path is not None:
            self.history = LocalHistory(config.history_path, config.history_limit)
        self.store = ResultsStore(
            history=self.history,
            known=known,
            bus=self.bus,
            default_labels=config.default_labels,
            environment=config.environment,
            environments=config.environments,
            report_variables=dict(config.variables),
            classifier=classifier,
        )
        self.readers = readers if readers is not None else default_readers()
        self.stage: ExecutionStage = "init"
        self._dump_temp_dirs: list[Path] = []

    async def start(self) -> None:
        """Load history and start accepting results.

        Raises:
            SessionStateError: If the session was already started or stopped

        """
        if self.stage == "running":
            raise SessionStateError(ALREADY_STARTED)
        if self.stage == "done":
            raise SessionStateError(ALREADY_STOPPED)

        await self.store.read_history()
        self.stage = "running"
        logger.info(f"Report {self.report_uuid} started")

    async def read_result(self, result_file: ResultFile) -> bool:
        """Pass a result file to the readers until one consumes it.

        A reader raising an error is skipped and the next one is tried.

        Returns:
            True if a reader consumed the file

        """
        self._ensure_running()

        for reader in self.readers:
            try:
                if await reader.read(self.store, result_file):
                    return True
            except Exception as e:
                logger.debug(
                    f"Reader {reader.reader_id} failed on "
                    f"{result_file.original_file_name}: {e}"
                )

        logger.warning(f"No reader recognized {result_file.original_file_name}")
        return False

    async def read_file(self, path: Path) -> bool:
        """Read a single result file from disk."""
        self._ensure_running()
        return await self.read_result(PathResultFile(path))

    async def read_directory(self, directory: Path) -> int:
        """Read every file of a results directory.

        Returns:
            Number of files consumed by a reader

        """
        self._ensure_running()

        consumed = 0
        for path in sorted(directory.iterdir()):
            if path.is_file() and await self.read_result(PathResultFile(path)):
                consumed += 1

        logger.info(f"Read {consumed} result files from {directory}")
        return consumed

    async def done(self) -> HistoryDataPoint:
        """Close the session and persist its outcome.

        Writes the dump archive when the configuration sets ``dump``, else
        appends the run to the history log.

        Returns:
            History entry of the run

        Raises:
            SessionStateError: If the session isn't running

        """
        self._ensure_running()

        entry = create_history(
            self.report_uuid,
            self.store.all_test_cases(),
            self.store.all_test_results(),
            report_name=self.config.name,
        )

        self.bus.clear()
        self.stage = "done"

        try:
            if self.config.dump is not None:
                await self.dump_state(self.config.dump)
                return entry

            try:
                await self.store.append_history(entry)
            except (OSError, HistoryIntegrityError) as e:
                logger.error(f"Failed to append history: {e}")
            return entry
        finally:
            self.cleanup()

    async def dump_state(self, dump: Path) -> Path:
        """Write the store state and attachment contents to a zip archive.

        Returns:
            Path of the written archive

        """
        archive_path = dump_archive_path(dump)
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.store.dump_state().model_dump(mode="json", by_alias=True)

        with zipfile.ZipFile(
            archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=5
        ) as archive:
            for key, value in payload.items():
                archive.writestr(f"{key}{DUMP_ENTRY_SUFFIX}", json.dumps(value))

            for attachment in self.store.all_attachments():
                content = self.store.attachment_content_by_id(attachment.id)
                if content is None:
                    continue
                if isinstance(content, PathResultFile):
                    archive.write(content.path, arcname=attachment.id)
                else:
                    archive.writestr(attachment.id, content.read_bytes())

        logger.info(f"Dumped report state to {archive_path}")
        return archive_path

    async def restore_state(self, dumps: list[Path]) -> int:
        """Merge dump archives into the store.

        Missing archives are skipped. Attachment contents are extracted to a
        temporary directory removed when the session is done.

        Returns:
            Number of archives restored

        """
        entry_names = _dump_entry_names()
        restored = 0

        for dump in dumps:
            if not dump.exists():
                logger.warning(f"Dump {dump} not found, skipping")
                continue

            with zipfile.ZipFile(dump) as archive:
                data = {
                    name.removesuffix(DUMP_ENTRY_SUFFIX): json.loads(archive.read(name))
                    for name in archive.namelist()
                    if name in entry_names
                }
                state = StoreDump.model_validate(data)
                contents = self._extract_attachments(archive, dump, entry_names)

            self.store.restore_state(state, contents)
            restored += 1
            logger.info(f"Successfully restored state from {dump}")

        return restored

    def _extract_attachments(
        self, archive: zipfile.ZipFile, dump: Path, entry_names: set[str]
    ) -> dict[str, ResultFile]:
        temp_dir = Path(tempfile.mkdtemp(prefix=f"{dump.stem}-"))
        self._dump_temp_dirs.append(temp_dir)
        contents: dict[str, ResultFile] = {}

        try:
            for name in archive.namelist():
                if name in entry_names or Path(name).name != name:
                    continue
                target = temp_dir / name
                target.write_bytes(archive.read(name))
                contents[name] = PathResultFile(target, name)
        except (OSError, zipfile.BadZipFile) as e:
            logger.error(f"Can't restore attachments from {dump}, continuing without: {e}")

        return contents

    def cleanup(self) -> None:
        """Remove temporary directories created while restoring dumps."""
        for temp_dir in self._dump_temp_dirs:
            shutil.rmtree(temp_dir, ignore_errors=True)
        self._dump_temp_dirs = []

    def _ensure_running(self) -> None:
        if self.stage != "running":
            raise SessionStateError(INIT_REQUIRED)

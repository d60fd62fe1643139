"""Readers turning result files into store visits."""

import logging
from abc import ABC, abstractmethod

from boostsec.results_store.models.raw import (
    RawFixtureResult,
    RawGlobals,
    RawTestResult,
    ReaderContext,
)
from boostsec.results_store.result_file import ResultFile
from boostsec.results_store.store import ResultsStore

logger = logging.getLogger(__name__)


class ResultsReader(ABC):
    """Recognizes one kind of result file."""

    reader_id: str

    @abstractmethod
    async def read(self, store: ResultsStore, result_file: ResultFile) -> bool:
        """Visit the file's content into the store.

        Args:
            store: Store receiving the visits
            result_file: File to read

        Returns:
            True if the file was recognized and consumed

        """

    def context(self, result_file: ResultFile) -> ReaderContext:
        return ReaderContext(
            reader_id=self.reader_id,
            metadata={"fileName": result_file.original_file_name},
        )


class RawResultsReader(ResultsReader):
    """Reads normalized result, container and globals JSON files."""

    reader_id = "raw"

    async def read(self, store: ResultsStore, result_file: ResultFile) -> bool:
        name = result_file.original_file_name
        context = self.context(result_file)

        if name.endswith("-result.json"):
            raw = RawTestResult.model_validate_json(result_file.read_bytes())
            await store.visit_test_result(raw, context)
        elif name.endswith("-container.json"):
            fixture = RawFixtureResult.model_validate_json(result_file.read_bytes())
            await store.visit_test_fixture_result(fixture, context)
        elif name.endswith("-globals.json"):
            raw_globals = RawGlobals.model_validate_json(result_file.read_bytes())
            await store.visit_globals(raw_globals, context)
        else:
            return False

        logger.debug(f"Read {name} with the {self.reader_id} reader")
        return True


class AttachmentsReader(ResultsReader):
    """Treats any file as attachment content."""

    reader_id = "attachments"

    async def read(self, store: ResultsStore, result_file: ResultFile) -> bool:
        await store.visit_attachment_file(result_file, self.context(result_file))
        return True


def default_readers() -> list[ResultsReader]:
    """Return the readers used when none are configured, attachments last."""
    return [RawResultsReader(), AttachmentsReader()]

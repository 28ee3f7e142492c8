"""
Interactive duplicate checking for the submission form.

Every edit of the title or abstract restarts a debounced two-tier check:

    IDLE -> CHECKING_LEXICAL -> [escalate] -> CHECKING_SEMANTIC -> SETTLED

Each submit() starts a new generation. Results are only published while
their generation is current; a superseded check is cancelled and anything
it still produces is discarded. Failures are logged and never propagate to
the form: a failed corpus fetch settles empty, a failed semantic tier keeps
the lexical results.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Callable, List, Optional

from .embedder import EmbeddingService
from .errors import DedupError
from .lexical import quick_duplicate_check
from .models import CorpusMatch, DedupSignal, Document
from .policy import DedupPolicy
from .scan import check_against_corpus, fetch_corpus, should_escalate

if TYPE_CHECKING:
    from fyp_portal.registry.project_registry import ProjectStore

logger = logging.getLogger("fyp_portal")


class CheckState(Enum):
    """Interactive checker states."""
    IDLE = "idle"
    CHECKING_LEXICAL = "checking_lexical"
    CHECKING_SEMANTIC = "checking_semantic"
    SETTLED = "settled"


@dataclass(frozen=True)
class CheckSnapshot:
    """State published to the form after each transition."""
    generation: int
    state: CheckState
    matches: List[CorpusMatch] = field(default_factory=list)
    signal: DedupSignal = DedupSignal.LOW
    is_blocking: bool = False
    error: Optional[str] = None


class InteractiveChecker:
    """
    Debounced, supersedable two-tier checker for one form.

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        store: "ProjectStore",
        embedder: EmbeddingService,
        policy: Optional[DedupPolicy] = None,
        on_update: Optional[Callable[[CheckSnapshot], None]] = None,
        exclude_id: Optional[str] = None,
    ):
        """
        Args:
            store: Project store to fetch the corpus from
            embedder: Embedding service for the semantic tier
            policy: Thresholds and debounce window
            on_update: Called with each published snapshot
            exclude_id: Project being edited, excluded from the corpus
        """
        self.store = store
        self.embedder = embedder
        self.policy = policy or DedupPolicy()
        self.on_update = on_update
        self.exclude_id = exclude_id

        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._snapshot = CheckSnapshot(generation=0, state=CheckState.IDLE)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def snapshot(self) -> CheckSnapshot:
        return self._snapshot

    @property
    def state(self) -> CheckState:
        return self._snapshot.state

    def submit(self, title: str, abstract: Optional[str] = "") -> asyncio.Task:
        """
        Register new form input, superseding any pending or running check.

        Returns:
            The task running the new check
        """
        self._generation += 1
        generation = self._generation

        if self._task is not None and not self._task.done():
            self._task.cancel()

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(generation, title, abstract or ""))
        return self._task

    async def wait_settled(self) -> CheckSnapshot:
        """Wait until the latest check has finished and return its snapshot."""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)
        return self._snapshot

    def _publish(
        self,
        generation: int,
        state: CheckState,
        matches: List[CorpusMatch],
        error: Optional[str] = None,
    ) -> bool:
        if generation != self._generation:
            logger.debug(f"[Interactive] Discarding superseded result (generation {generation})")
            return False

        self._snapshot = CheckSnapshot(
            generation=generation,
            state=state,
            matches=list(matches),
            signal=self.policy.signal_for(matches),
            is_blocking=self.policy.is_blocking(matches),
            error=error,
        )
        if self.on_update is not None:
            self.on_update(self._snapshot)
        return True

    async def _run(self, generation: int, title: str, abstract: str) -> None:
        await asyncio.sleep(self.policy.debounce_seconds)

        if len(title.strip()) < self.policy.min_title_length:
            self._publish(generation, CheckState.IDLE, [])
            return

        loop = asyncio.get_running_loop()
        self._publish(generation, CheckState.CHECKING_LEXICAL, [])

        try:
            corpus = await loop.run_in_executor(
                None,
                partial(
                    fetch_corpus,
                    self.store,
                    self.exclude_id,
                    self.policy.degrade_on_fetch_failure,
                ),
            )
        except DedupError as e:
            logger.warning(f"[Interactive] {e}")
            self._publish(generation, CheckState.SETTLED, [], error=str(e))
            return

        if generation != self._generation:
            return

        quick = quick_duplicate_check(
            title, abstract, corpus, threshold=self.policy.quick_threshold
        )

        if not should_escalate(quick, self.policy.escalation_threshold):
            self._publish(generation, CheckState.SETTLED, quick)
            return

        self._publish(generation, CheckState.CHECKING_SEMANTIC, quick)

        try:
            semantic = await loop.run_in_executor(
                None,
                partial(
                    check_against_corpus,
                    Document(title=title, abstract=abstract),
                    corpus,
                    self.embedder,
                    self.policy.corpus_threshold,
                ),
            )
        except DedupError as e:
            logger.warning(f"[Interactive] Semantic check failed, keeping quick results: {e}")
            self._publish(generation, CheckState.SETTLED, quick, error=str(e))
            return

        self._publish(generation, CheckState.SETTLED, semantic)

"""Participant identity resolution at session start."""

import uuid
from typing import Optional

from ..config import Settings, settings as default_settings
from ..db.repositories.session_state import CONTINUITY_KEYS, SessionStateRepository, StateKey
from ..exceptions import PersistenceFailure
from ..models.message import load_messages
from ..models.session import ResolvedIdentity
from ..models.workflow import WorkflowState
from ..utils.logger import get_app_logger


ANONYMOUS_PREFIX = "anonymous-"


class IdentityResolver:
    """
    Establishes a stable participant identifier and decides whether the
    previous conversation continues.

    A stored identifier longer than ``stable_id_min_length`` counts as stable
    and its continuity artifacts are restored. Any id of that length passes,
    so a random leftover id is also treated as stable.
    """

    def __init__(self, state_repo: SessionStateRepository, settings: Settings = default_settings):
        self.state_repo = state_repo
        self.settings = settings
        self.logger = get_app_logger()

    def initialize(self, authenticated_id: Optional[str] = None) -> ResolvedIdentity:
        """
        Resolve the participant for this session.

        Args:
            authenticated_id: Id of the logged-in user, if any

        Returns:
            ResolvedIdentity with any restored conversation id, transcript and workflow state
        """
        if authenticated_id:
            resolved = ResolvedIdentity(participant_id=authenticated_id, is_authenticated=True)
            self.logger.info(f"Using authenticated participant {authenticated_id}")
        else:
            stored_id = self._read(StateKey.PARTICIPANT_ID)
            if self.is_stable(stored_id):
                resolved = self._restore(stored_id)
            else:
                resolved = ResolvedIdentity(participant_id=self.mint_id())
                self._purge_continuity()
                self.logger.info(f"Minted participant {resolved.participant_id}")

        self.persist(resolved.participant_id)
        return resolved

    def is_stable(self, participant_id: Optional[str]) -> bool:
        """Check whether a stored id should be reused."""
        return bool(participant_id) and len(participant_id) > self.settings.stable_id_min_length

    @staticmethod
    def mint_id() -> str:
        """Create a fresh unguessable participant id."""
        return f"{ANONYMOUS_PREFIX}{uuid.uuid4().hex}"

    def mint(self) -> str:
        """Mint and persist a new participant id."""
        participant_id = self.mint_id()
        self.persist(participant_id)
        self.logger.info(f"Minted participant {participant_id}")
        return participant_id

    def persist(self, participant_id: str) -> None:
        """Write the participant id and session timestamp."""
        try:
            self.state_repo.set(StateKey.PARTICIPANT_ID, participant_id)
            self.state_repo.touch()
        except PersistenceFailure as e:
            self.logger.warning(f"Could not persist participant id: {e}")

    def _restore(self, participant_id: str) -> ResolvedIdentity:
        conversation_id = self._read(StateKey.CONVERSATION_ID)

        messages = []
        raw_messages = self._read(StateKey.MESSAGES)
        if raw_messages:
            try:
                messages = load_messages(raw_messages)
            except ValueError as e:
                self.logger.warning(f"Ignoring unreadable stored transcript: {e}")

        workflow = None
        raw_workflow = self._read(StateKey.WORKFLOW_STATE)
        if raw_workflow:
            try:
                workflow = WorkflowState.model_validate_json(raw_workflow)
            except ValueError as e:
                self.logger.warning(f"Ignoring unreadable stored workflow state: {e}")

        is_continuation = bool(conversation_id or messages or workflow)
        if is_continuation:
            nodes = len(workflow.nodes) if workflow else 0
            self.logger.info(
                f"Restored session for {participant_id}: conversation={conversation_id}, "
                f"messages={len(messages)}, nodes={nodes}"
            )
        else:
            self.logger.info(f"Reusing participant {participant_id} with no stored conversation")

        return ResolvedIdentity(
            participant_id=participant_id,
            is_continuation=is_continuation,
            conversation_id=conversation_id or None,
            messages=messages,
            workflow=workflow
        )

    def _purge_continuity(self) -> None:
        try:
            self.state_repo.delete(*CONTINUITY_KEYS)
        except PersistenceFailure as e:
            self.logger.warning(f"Could not purge stale session state: {e}")

    def _read(self, key: StateKey) -> Optional[str]:
        try:
            return self.state_repo.get(key)
        except PersistenceFailure as e:
            self.logger.warning(f"Could not read {key.value}: {e}")
            return None

"""Calendar engine: the operations the UI and admin tools call.

Reads (timeline, selectability, selection) never raise on bad input and fall
back to the default cadence when no config is stored. Writes run inside one
``get_session()`` transaction, so an overlap resolution either lands as a
whole or not at all.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Iterable, Sequence
from contextlib import AbstractContextManager, contextmanager
from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from app.calendar.dates import add_days, normalize_day, require_day
from app.calendar.errors import (
    ConfigMissingError,
    CustomizationNotFoundError,
    OverlapResolutionPartialFailureError,
    RepositoryUnavailableError,
)
from app.calendar.overlap import order_for_apply, plan_overlap_resolution, validate_draft
from app.calendar.repository import CustomizationRepository, SqlCustomizationRepository
from app.calendar.selectability import SelectionPolicy
from app.calendar.selectability import is_selectable as evaluate_selectable
from app.calendar.selection import SelectionResult, reduce_selection
from app.calendar.standard_week import cycle_length_days
from app.calendar.timeline import compose_timeline
from app.calendar.types import (
    Actor,
    CalendarConfig,
    CreateOperation,
    CustomizationDraft,
    CustomizationUpdate,
    DateInterval,
    DeleteOperation,
    Operation,
    UpdateOperation,
    Week,
    WeekCustomization,
    WeekStatus,
)
from app.config.settings import settings
from app.db import session as db_session

SessionFactory = Callable[[], AbstractContextManager[Session]]


def policy_from_settings() -> SelectionPolicy:
    """Selection policy built from environment settings (without blackouts)."""
    return SelectionPolicy(
        reference_timezone=settings.reference_timezone,
        cutoff_hour=settings.booking_cutoff_hour,
        season_close_month=settings.season_close_month,
        season_close_day=settings.season_close_day,
        always_open_months=tuple(settings.always_open_months),
        max_selection_weeks=settings.max_selection_weeks,
    )


def default_config_from_settings() -> CalendarConfig:
    return CalendarConfig(
        check_in_weekday=settings.default_check_in_weekday,
        check_out_weekday=settings.default_check_out_weekday,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _span(weeks: Iterable[Week]) -> tuple[date, date] | None:
    weeks = list(weeks)
    if not weeks:
        return None
    return min(w.start_date for w in weeks), max(w.end_date for w in weeks)


class CalendarEngine:
    """Week timeline engine bound to a session factory.

    Args:
        session_factory: Context manager factory yielding a transactional
            session. Defaults to ``app.db.session.get_session`` looked up at
            call time.
        policy: Selection policy; defaults to one built from settings
        clock: Returns the current time, used when callers pass no ``now``
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        policy: SelectionPolicy | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_factory = session_factory
        self.policy = policy or policy_from_settings()
        self._clock = clock
        self._config: CalendarConfig | None = None

    @contextmanager
    def _repository(self) -> Generator[CustomizationRepository, None, None]:
        factory = self._session_factory or db_session.get_session
        with factory() as session:
            yield SqlCustomizationRepository(session)

    def _day(self, value: date | datetime | str | None) -> date | None:
        return normalize_day(value, self.policy.tz)

    # Config

    def get_config(self) -> CalendarConfig:
        """Stored cadence, or the settings default when none is stored or it is malformed."""
        if self._config is not None:
            return self._config

        try:
            with self._repository() as repo:
                config = repo.get_config()
        except ConfigMissingError as e:
            logger.warning(f"[CALENDAR] Falling back to default calendar config: {e}")
            config = None

        if config is None:
            config = default_config_from_settings()
            logger.info(
                "[CALENDAR] No calendar config stored, using defaults",
                check_in_weekday=config.check_in_weekday,
                check_out_weekday=config.check_out_weekday,
            )
        self._config = config
        return config

    def update_config(
        self,
        check_in_weekday: int | None = None,
        check_out_weekday: int | None = None,
    ) -> CalendarConfig:
        """Change the cadence. Existing customizations are left untouched.

        Raises:
            ConfigMissingError: Weekday outside 0..6
        """
        with self._repository() as repo:
            config = repo.update_config(check_in_weekday=check_in_weekday, check_out_weekday=check_out_weekday)
        self._config = config
        return config

    def invalidate_config(self) -> None:
        self._config = None

    # Timeline

    def get_weeks(
        self,
        start: date | datetime | str | None,
        end: date | datetime | str | None,
        *,
        include_deleted: bool = False,
    ) -> list[Week]:
        """Composed timeline for [start, end]; empty for unparseable or inverted ranges."""
        range_start = self._day(start)
        range_end = self._day(end)
        if range_start is None or range_end is None:
            logger.warning("[TIMELINE] Unparseable range, returning no weeks", start=str(start), end=str(end))
            return []
        if range_start > range_end:
            logger.warning(
                "[TIMELINE] Inverted range, returning no weeks",
                start=range_start.isoformat(),
                end=range_end.isoformat(),
            )
            return []

        config = self.get_config()
        with self._repository() as repo:
            customizations = repo.list_customizations(range_start, range_end)
        return compose_timeline(
            range_start,
            range_end,
            config,
            customizations,
            include_deleted=include_deleted,
        )

    # Blackouts

    def list_blackouts(self, start: date, end: date) -> list[DateInterval]:
        with self._repository() as repo:
            return repo.list_blackouts(start, end)

    def add_blackout(
        self,
        start: date | datetime | str,
        end: date | datetime | str,
        reason: str | None = None,
    ) -> DateInterval:
        with self._repository() as repo:
            return repo.add_blackout(require_day(start, self.policy.tz), require_day(end, self.policy.tz), reason)

    def _policy_for(self, weeks: Iterable[Week]) -> SelectionPolicy:
        span = _span(weeks)
        if span is None:
            return self.policy
        blackouts = self.list_blackouts(*span)
        return self.policy.model_copy(update={"blackouts": tuple(blackouts)})

    # Selection

    def is_selectable(
        self,
        week: Week,
        actor: Actor,
        selection: Sequence[Week] = (),
        now: datetime | None = None,
    ) -> bool:
        """Whether ``week`` may be clicked, with stored blackouts applied."""
        policy = self._policy_for([week, *selection])
        return evaluate_selectable(week, actor, list(selection), now or self._clock(), policy)

    def apply_selection(
        self,
        week: Week,
        selection: Sequence[Week],
        actor: Actor,
        now: datetime | None = None,
        timeline: Sequence[Week] | None = None,
    ) -> SelectionResult:
        """Reduce a click on ``week`` into a new selection.

        When no ``timeline`` is given the weeks between the clicked week and
        the current selection are composed from the store, starting one cycle
        early so the earliest involved week keeps its boundaries.
        """
        involved = [week, *selection]
        if timeline is None:
            span = _span(involved)
            if span is None:
                timeline = []
            else:
                # A cycle of lead-in so weeks right after a customization compose as displayed
                lead_in = cycle_length_days(self.get_config())
                timeline = self.get_weeks(add_days(span[0], -lead_in), span[1])
        policy = self._policy_for(involved)
        result = reduce_selection(week, selection, actor, timeline, now or self._clock(), policy)
        logger.info(
            "[SELECTION] Selection reduced",
            week_id=week.id,
            outcome=result.outcome,
            weeks_count=len(result.weeks),
        )
        return result

    # Customizations

    def list_customizations(self, start: date, end: date) -> list[WeekCustomization]:
        with self._repository() as repo:
            return repo.list_customizations(start, end)

    def get_customization(self, customization_id: str) -> WeekCustomization | None:
        with self._repository() as repo:
            return repo.get_customization(customization_id)

    def resolve_overlap(
        self,
        start: date | datetime | str,
        end: date | datetime | str,
        status: WeekStatus = WeekStatus.VISIBLE,
        name: str | None = None,
        link: str | None = None,
        flexible_dates: Iterable[date | datetime | str] = (),
        actor: Actor | None = None,
        customization_id: str | None = None,
    ) -> list[Operation]:
        """Store a customization over [start, end], trimming whatever it overlaps.

        Args:
            start: First day of the customization
            end: Last day of the customization
            status: Visibility of the customization
            name: Display name
            link: External link
            flexible_dates: Extra permitted arrival days inside [start, end]
            actor: Acting user, recorded as creator
            customization_id: Id of the customization being re-dated, None to create

        Returns:
            The planned operations, target first, as applied in one transaction.

        Raises:
            InvalidDateError: A date cannot be normalized
            InvalidRangeError: end before start
            InvalidFlexibleDateError: A flexible date outside [start, end]
            CustomizationNotFoundError: ``customization_id`` does not exist
            OverlapResolutionPartialFailureError: An operation failed; nothing was committed
            RepositoryUnavailableError: The store could not be reached
        """
        tz = self.policy.tz
        draft = CustomizationDraft(
            start_date=require_day(start, tz),
            end_date=require_day(end, tz),
            status=status,
            name=name,
            link=link,
            flexible_checkin_dates=[require_day(d, tz) for d in flexible_dates],
        )
        validate_draft(draft)
        created_by = actor.user_id if actor else None

        with self._repository() as repo:
            if customization_id is not None and repo.get_customization(customization_id) is None:
                raise CustomizationNotFoundError(customization_id)

            existing = repo.list_customizations(draft.start_date, draft.end_date, exclude_id=customization_id)
            operations = plan_overlap_resolution(draft, existing, customization_id=customization_id)
            self._apply(repo, operations, created_by)

        logger.info(
            "[OVERLAP] Resolution committed",
            target_start=draft.start_date.isoformat(),
            target_end=draft.end_date.isoformat(),
            customization_id=customization_id,
            operations_count=len(operations),
        )
        return operations

    def _apply(
        self,
        repo: CustomizationRepository,
        operations: Sequence[Operation],
        created_by: str | None,
    ) -> None:
        applied: list[Operation] = []
        for operation in order_for_apply(operations):
            try:
                self._apply_one(repo, operation, created_by)
            except RepositoryUnavailableError:
                raise
            except Exception as e:
                logger.error(
                    "[OVERLAP] Operation failed, rolling back resolution",
                    kind=operation.kind,
                    reason=operation.reason,
                    applied_count=len(applied),
                    error=str(e),
                )
                raise OverlapResolutionPartialFailureError(operation, applied, e) from e
            applied.append(operation)

    @staticmethod
    def _apply_one(repo: CustomizationRepository, operation: Operation, created_by: str | None) -> None:
        if isinstance(operation, CreateOperation):
            repo.create_customization(
                operation.start_date,
                operation.end_date,
                operation.status,
                name=operation.name,
                link=operation.link,
                flexible_dates=operation.flexible_checkin_dates,
                created_by=created_by,
            )
        elif isinstance(operation, UpdateOperation):
            repo.update_customization(operation.customization_id, **operation.changes())
        elif isinstance(operation, DeleteOperation):
            if not repo.delete_customization(operation.customization_id):
                raise CustomizationNotFoundError(operation.customization_id)

    def create_customization(self, draft: CustomizationDraft, actor: Actor | None = None) -> list[Operation]:
        return self.resolve_overlap(
            draft.start_date,
            draft.end_date,
            status=draft.status,
            name=draft.name,
            link=draft.link,
            flexible_dates=draft.flexible_checkin_dates,
            actor=actor,
        )

    def update_customization(
        self,
        customization_id: str,
        update: CustomizationUpdate,
        actor: Actor | None = None,
    ) -> list[Operation]:
        """Edit a customization.

        Date changes go through overlap resolution; other edits are a single
        update of the stored row.

        Raises:
            CustomizationNotFoundError: Unknown id
        """
        current = self.get_customization(customization_id)
        if current is None:
            raise CustomizationNotFoundError(customization_id)

        fields = update.model_dump(include=update.model_fields_set)
        if update.changes_dates:
            merged = current.model_dump(include=set(CustomizationDraft.model_fields)) | {
                k: v for k, v in fields.items() if v is not None or k in {"name", "link"}
            }
            if update.flexible_checkin_dates is None:
                # Keep only the stored flexible dates the new interval still covers
                merged["flexible_checkin_dates"] = [
                    d for d in current.flexible_checkin_dates if merged["start_date"] <= d <= merged["end_date"]
                ]
            return self.resolve_overlap(
                merged["start_date"],
                merged["end_date"],
                status=merged["status"],
                name=merged["name"],
                link=merged["link"],
                flexible_dates=merged["flexible_checkin_dates"],
                actor=actor,
                customization_id=customization_id,
            )

        draft = CustomizationDraft(
            start_date=current.start_date,
            end_date=current.end_date,
            flexible_checkin_dates=update.flexible_checkin_dates or [],
        )
        validate_draft(draft)
        operation = UpdateOperation(reason="target", customization_id=customization_id, **fields)
        with self._repository() as repo:
            self._apply(repo, [operation], actor.user_id if actor else None)
        return [operation]

    def delete_customization(self, customization_id: str) -> bool:
        """Hard-delete a customization; its span reverts to standard weeks."""
        with self._repository() as repo:
            return repo.delete_customization(customization_id)

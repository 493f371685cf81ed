"""
Multi-step daily check-in flow.

The flow is a finite-state machine driven by a transition table:
(step, event) -> Transition(target, effects). Side effects (partial
writes, the auto-advance countdown, dismissal, profile fill-in and the
final write) are executed by `CheckinFlow` after the transition is looked
up, so the ordering rules hold regardless of which UI drives the flow:

* every countdown carries an epoch; a firing with a stale epoch is a no-op
* partial writes are serialized and all of them are awaited before the
  finalize write, which therefore always supersedes the last partial state
* the step list is fixed when the flow starts
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healcore.core.config import settings
from healcore.core.errors import InvalidTransition
from healcore.db.models import MOODS
from healcore.repositories import checkin_repo, user_repo
from healcore.services.clock import postpartum_weeks, reporting_today

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "We couldn't save your check-in. Please try again."


class FlowStep(str, Enum):
    MOOD = "mood"
    ENERGY = "energy"
    GOALS_NOTES = "goals_notes"
    PROFILE = "profile"


class FlowStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    DISMISSED = "dismissed"


class FlowEvent(str, Enum):
    SELECT_MOOD = "select_mood"
    SELECT_ENERGY = "select_energy"
    UPDATE_DETAILS = "update_details"
    UPDATE_PROFILE = "update_profile"
    COUNTDOWN_ELAPSED = "countdown_elapsed"
    CANCEL_COUNTDOWN = "cancel_countdown"
    NEXT = "next"
    BACK = "back"
    SKIP = "skip"
    CONFIRM = "confirm"


class Effect(str, Enum):
    PERSIST_PARTIAL = "persist_partial"
    START_COUNTDOWN = "start_countdown"
    CANCEL_COUNTDOWN = "cancel_countdown"
    DISMISS = "dismiss"
    UPDATE_PROFILE = "update_profile"
    FINALIZE = "finalize"


class Target(str, Enum):
    STAY = "stay"
    ADVANCE = "advance"
    RETREAT = "retreat"
    COMPLETE = "complete"
    DISMISSED = "dismissed"


@dataclass(frozen=True, slots=True)
class Transition:
    target: Target
    effects: tuple[Effect, ...] = ()


_S, _E = FlowStep, FlowEvent
_cancel = (Effect.CANCEL_COUNTDOWN,)

TRANSITIONS: dict[tuple[FlowStep, FlowEvent], Transition] = {
    (_S.MOOD, _E.SELECT_MOOD): Transition(Target.STAY, (Effect.PERSIST_PARTIAL, Effect.START_COUNTDOWN)),
    (_S.MOOD, _E.COUNTDOWN_ELAPSED): Transition(Target.ADVANCE),
    (_S.MOOD, _E.CANCEL_COUNTDOWN): Transition(Target.STAY, _cancel),
    (_S.MOOD, _E.NEXT): Transition(Target.ADVANCE, _cancel),
    (_S.MOOD, _E.SKIP): Transition(Target.DISMISSED, (Effect.CANCEL_COUNTDOWN, Effect.DISMISS)),

    (_S.ENERGY, _E.SELECT_ENERGY): Transition(Target.STAY, (Effect.PERSIST_PARTIAL, Effect.START_COUNTDOWN)),
    (_S.ENERGY, _E.COUNTDOWN_ELAPSED): Transition(Target.ADVANCE),
    (_S.ENERGY, _E.CANCEL_COUNTDOWN): Transition(Target.STAY, _cancel),
    (_S.ENERGY, _E.NEXT): Transition(Target.ADVANCE, _cancel),
    (_S.ENERGY, _E.BACK): Transition(Target.RETREAT, _cancel),

    (_S.GOALS_NOTES, _E.UPDATE_DETAILS): Transition(Target.STAY),
    (_S.GOALS_NOTES, _E.NEXT): Transition(Target.ADVANCE, (Effect.PERSIST_PARTIAL,)),
    (_S.GOALS_NOTES, _E.BACK): Transition(Target.RETREAT, _cancel),
    (_S.GOALS_NOTES, _E.CONFIRM): Transition(Target.COMPLETE, (Effect.CANCEL_COUNTDOWN, Effect.FINALIZE)),

    (_S.PROFILE, _E.UPDATE_PROFILE): Transition(Target.STAY),
    (_S.PROFILE, _E.BACK): Transition(Target.RETREAT, _cancel),
    (_S.PROFILE, _E.SKIP): Transition(Target.DISMISSED, (Effect.CANCEL_COUNTDOWN, Effect.DISMISS)),
    (_S.PROFILE, _E.CONFIRM): Transition(
        Target.COMPLETE, (Effect.CANCEL_COUNTDOWN, Effect.UPDATE_PROFILE, Effect.FINALIZE)
    ),
}

DETAIL_FIELDS = (
    "goals", "gratitude", "struggles",
    "workout_completed", "breathing_practice", "water_glasses", "cardio_minutes",
)
PROFILE_FIELDS = ("country", "delivery_date", "instagram_handle")


@dataclass(slots=True)
class UserProfile:
    country: Optional[str] = None
    delivery_date: Optional[date] = None
    instagram_handle: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.country) and self.delivery_date is not None


@dataclass(slots=True)
class CheckinDraft:
    """Values accumulated across steps; never reset by navigation."""

    mood: Optional[str] = None
    energy_level: Optional[int] = None
    details: dict[str, Any] = field(default_factory=dict)
    profile: dict[str, Any] = field(default_factory=dict)

    def step_fields(self, step: FlowStep) -> dict[str, Any]:
        if step is FlowStep.MOOD:
            return {"mood": self.mood}
        if step is FlowStep.ENERGY:
            return {"energy_level": self.energy_level}
        if step is FlowStep.GOALS_NOTES:
            return dict(self.details)
        return {}

    def all_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = dict(self.details)
        if self.mood is not None:
            fields["mood"] = self.mood
        if self.energy_level is not None:
            fields["energy_level"] = self.energy_level
        return fields


class CheckinStore(Protocol):
    """Persistence boundary used by the flow."""

    async def upsert_checkin(self, user_id: UUID, day: date, fields: dict) -> UUID: ...

    async def finalize_checkin(self, user_id: UUID, checkin_id: UUID, fields: dict) -> None: ...

    async def get_profile(self, user_id: UUID) -> UserProfile: ...

    async def update_profile(self, user_id: UUID, fields: dict) -> list[str]: ...

    async def dismiss(self, user_id: UUID) -> None: ...


Notifier = Callable[[str], None]


def _log_notifier(message: str) -> None:
    logger.warning("Check-in notification: %s", message)


class AutoAdvanceTimer:
    """
    Cancellable one-shot countdown. Each start or cancel bumps the epoch,
    so a callback scheduled under an older epoch does nothing.
    """

    def __init__(self, delay: float, on_fire: Callable[[int, FlowStep], None]):
        self.delay = delay
        self._on_fire = on_fire
        self._epoch = 0
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, step: FlowStep) -> int:
        self.cancel()
        loop = asyncio.get_running_loop()
        epoch = self._epoch
        self._handle = loop.call_later(self.delay, self._fire, epoch, step)
        return epoch

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._epoch += 1

    def _fire(self, epoch: int, step: FlowStep) -> None:
        if epoch != self._epoch:
            return
        self._handle = None
        self._on_fire(epoch, step)


class CheckinFlow:
    """
    One user's check-in session for one day.

    Build it with `CheckinFlow.begin(...)`, which loads the profile and
    fixes the step list, then drive it with `dispatch` or the helpers.
    """

    def __init__(
        self,
        store: CheckinStore,
        user_id: UUID,
        *,
        profile: UserProfile,
        today: date,
        auto_advance_seconds: Optional[float] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.profile = profile
        self.today = today
        self.notify = notifier or _log_notifier
        self.steps: tuple[FlowStep, ...] = (FlowStep.MOOD, FlowStep.ENERGY, FlowStep.GOALS_NOTES) + (
            () if profile.is_complete else (FlowStep.PROFILE,)
        )
        self.index = 0
        self.status = FlowStatus.ACTIVE
        self.draft = CheckinDraft()
        self.checkin_id: Optional[UUID] = None
        self.last_error: Optional[str] = None
        delay = settings.AUTO_ADVANCE_SECONDS if auto_advance_seconds is None else auto_advance_seconds
        self.timer = AutoAdvanceTimer(delay, self._on_countdown)
        self._last_write: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    @classmethod
    async def begin(
        cls,
        store: CheckinStore,
        user_id: UUID,
        *,
        today: Optional[date] = None,
        auto_advance_seconds: Optional[float] = None,
        notifier: Optional[Notifier] = None,
    ) -> "CheckinFlow":
        profile = await store.get_profile(user_id)
        return cls(
            store, user_id,
            profile=profile,
            today=today or reporting_today(),
            auto_advance_seconds=auto_advance_seconds,
            notifier=notifier,
        )

    @property
    def step(self) -> FlowStep:
        return self.steps[self.index]

    @property
    def is_final_step(self) -> bool:
        return self.index == len(self.steps) - 1

    # -- event helpers -------------------------------------------------

    async def select_mood(self, mood: str) -> FlowStep:
        return await self.dispatch(FlowEvent.SELECT_MOOD, {"mood": mood})

    async def select_energy(self, level: int) -> FlowStep:
        return await self.dispatch(FlowEvent.SELECT_ENERGY, {"energy_level": level})

    async def update_details(self, **fields: Any) -> FlowStep:
        return await self.dispatch(FlowEvent.UPDATE_DETAILS, fields)

    async def update_profile(self, **fields: Any) -> FlowStep:
        return await self.dispatch(FlowEvent.UPDATE_PROFILE, fields)

    async def cancel_countdown(self) -> FlowStep:
        return await self.dispatch(FlowEvent.CANCEL_COUNTDOWN)

    async def next(self) -> FlowStep:
        return await self.dispatch(FlowEvent.NEXT)

    async def back(self) -> FlowStep:
        return await self.dispatch(FlowEvent.BACK)

    async def skip(self) -> FlowStep:
        return await self.dispatch(FlowEvent.SKIP)

    async def confirm(self) -> FlowStep:
        return await self.dispatch(FlowEvent.CONFIRM)

    # -- machine -------------------------------------------------------

    async def dispatch(self, event: FlowEvent, payload: Optional[dict] = None, *, epoch: Optional[int] = None) -> FlowStep:
        if self.status is not FlowStatus.ACTIVE:
            raise InvalidTransition(f"Check-in flow is {self.status.value}", detail=event.value)

        if event is FlowEvent.COUNTDOWN_ELAPSED and epoch is not None and epoch != self.timer.epoch:
            logger.debug("Ignoring stale countdown (epoch %s, current %s)", epoch, self.timer.epoch)
            return self.step

        transition = TRANSITIONS.get((self.step, event))
        if transition is None:
            raise InvalidTransition(f"'{event.value}' is not allowed on step '{self.step.value}'")
        self._guard(event, transition)
        self._absorb(event, payload or {})

        write = None
        for effect in transition.effects:
            if effect is Effect.FINALIZE or effect is Effect.UPDATE_PROFILE:
                continue
            write = self._run_effect(effect) or write

        if transition.target is Target.COMPLETE:
            if await self._complete(update_profile=Effect.UPDATE_PROFILE in transition.effects):
                self.status = FlowStatus.COMPLETE
        elif transition.target is Target.DISMISSED:
            await self._dismiss()
            self.status = FlowStatus.DISMISSED
        elif transition.target is Target.ADVANCE:
            # a step that saves on leave is only left once the save landed
            if write is not None and not await write:
                return self.step
            self.index = min(self.index + 1, len(self.steps) - 1)
        elif transition.target is Target.RETREAT:
            self.index = max(self.index - 1, 0)
        return self.step

    def _guard(self, event: FlowEvent, transition: Transition) -> None:
        if transition.target is Target.COMPLETE and not self.is_final_step:
            raise InvalidTransition("Confirm is only available on the last step")
        if transition.target is Target.ADVANCE and self.is_final_step:
            raise InvalidTransition("Already on the last step")
        if event is FlowEvent.NEXT and self.step is FlowStep.MOOD and self.draft.mood is None:
            raise InvalidTransition("Select a mood first")
        if event is FlowEvent.NEXT and self.step is FlowStep.ENERGY and self.draft.energy_level is None:
            raise InvalidTransition("Select an energy level first")

    def _absorb(self, event: FlowEvent, payload: dict) -> None:
        if event is FlowEvent.SELECT_MOOD:
            mood = payload.get("mood")
            if mood not in MOODS:
                raise ValueError(f"mood must be one of {', '.join(MOODS)}")
            self.draft.mood = mood
        elif event is FlowEvent.SELECT_ENERGY:
            level = payload.get("energy_level")
            if not isinstance(level, int) or not 1 <= level <= 5:
                raise ValueError("energy_level must be between 1 and 5")
            self.draft.energy_level = level
        elif event is FlowEvent.UPDATE_DETAILS:
            unknown = set(payload) - set(DETAIL_FIELDS)
            if unknown:
                raise ValueError(f"Unknown check-in fields: {', '.join(sorted(unknown))}")
            self.draft.details.update(payload)
        elif event is FlowEvent.UPDATE_PROFILE:
            unknown = set(payload) - set(PROFILE_FIELDS)
            if unknown:
                raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
            self.draft.profile.update(payload)

    def _run_effect(self, effect: Effect) -> Optional[asyncio.Task]:
        if effect is Effect.PERSIST_PARTIAL:
            return self._persist_partial(self.step)
        if effect is Effect.START_COUNTDOWN:
            self.timer.start(self.step)
        elif effect is Effect.CANCEL_COUNTDOWN:
            self.timer.cancel()
        return None

    def _on_countdown(self, epoch: int, step: FlowStep) -> None:
        if self.status is not FlowStatus.ACTIVE or step is not self.step:
            return
        task = asyncio.get_running_loop().create_task(self.dispatch(FlowEvent.COUNTDOWN_ELAPSED, epoch=epoch))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -- writes --------------------------------------------------------

    def _persist_partial(self, step: FlowStep) -> Optional[asyncio.Task]:
        fields = self.draft.step_fields(step)
        if not fields:
            return None
        previous = self._last_write
        epoch = self.timer.epoch + 1 if step in (FlowStep.MOOD, FlowStep.ENERGY) else None
        self._last_write = asyncio.get_running_loop().create_task(self._write_after(previous, fields, step, epoch))
        return self._last_write

    async def _write_after(self, previous: Optional[asyncio.Task], fields: dict, step: FlowStep, epoch: Optional[int]) -> bool:
        if previous is not None:
            # serialized so a later selection always lands last
            await asyncio.wait([previous])
        try:
            self.checkin_id = await self.store.upsert_checkin(self.user_id, self.today, fields)
            return True
        except Exception as e:
            logger.warning("Partial check-in write failed for user %s on step %s: %s", self.user_id, step.value, e)
            self.last_error = SAVE_FAILED_MESSAGE
            self.notify(SAVE_FAILED_MESSAGE)
            # keep the user on the step so they can retry
            if epoch is not None and self.timer.epoch == epoch and self.step is step:
                self.timer.cancel()
            return False

    async def wait_for_writes(self) -> None:
        """Block until every partial write issued so far has settled."""
        if self._last_write is not None:
            await asyncio.wait([self._last_write])

    async def _complete(self, *, update_profile: bool) -> bool:
        await self.wait_for_writes()
        try:
            if update_profile and self.draft.profile:
                written = await self.store.update_profile(self.user_id, dict(self.draft.profile))
                logger.info("Profile fields written during check-in: %s", written)

            delivery = self.draft.profile.get("delivery_date") or self.profile.delivery_date
            fields = self.draft.all_fields()
            fields["postpartum_weeks_at_checkin"] = postpartum_weeks(delivery, self.today)

            if self.checkin_id is None:
                self.checkin_id = await self.store.upsert_checkin(self.user_id, self.today, fields)
            await self.store.finalize_checkin(self.user_id, self.checkin_id, fields)
        except Exception as e:
            logger.warning("Finalizing check-in failed for user %s: %s", self.user_id, e)
            self.last_error = SAVE_FAILED_MESSAGE
            self.notify(SAVE_FAILED_MESSAGE)
            return False
        self.last_error = None
        return True

    async def _dismiss(self) -> None:
        try:
            await self.store.dismiss(self.user_id)
        except Exception as e:
            logger.warning("Recording check-in dismissal failed for user %s: %s", self.user_id, e)
            self.notify("We couldn't record that. You may see the check-in again later.")


class SqlCheckinStore:
    """
    `CheckinStore` over the relational store. Each call uses its own
    session so serialized background writes never share one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def upsert_checkin(self, user_id: UUID, day: date, fields: dict) -> UUID:
        async with self._sessions() as db:
            ci = await checkin_repo.upsert_checkin(db, user_id, day, fields)
            return ci.id

    async def finalize_checkin(self, user_id: UUID, checkin_id: UUID, fields: dict) -> None:
        async with self._sessions() as db:
            await checkin_repo.finalize_checkin(db, user_id, checkin_id, fields)
            await user_repo.mark_checkin_prompted(db, user_id)

    async def get_profile(self, user_id: UUID) -> UserProfile:
        async with self._sessions() as db:
            user = await user_repo.get_user(db, user_id)
            if user is None:
                return UserProfile()
            return UserProfile(user.country, user.delivery_date, user.instagram_handle)

    async def update_profile(self, user_id: UUID, fields: dict) -> list[str]:
        async with self._sessions() as db:
            return await user_repo.update_user_profile(db, user_id, fields)

    async def dismiss(self, user_id: UUID) -> None:
        async with self._sessions() as db:
            await user_repo.mark_checkin_prompted(db, user_id)

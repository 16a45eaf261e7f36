from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler

from libs.core.application.contracts import (
    DeathDateLookup,
    DeferredExecutionRequester,
    PushNotifier,
)
from libs.core.application.events import EventBus
from libs.core.application.notification_dispatcher import (
    DispatchState,
    NotificationDispatcher,
)
from libs.core.application.poll_executor import PollExecutor
from libs.core.application.scheduler import DeathCheckScheduler
from libs.infra.push.notifiers import LoggingPushNotifier, WebhookPushNotifier
from libs.infra.wikidata.lookup import WikidataDeathDateLookup
from services.deathwatch_api.infrastructure.memory_store import (
    InMemorySubjectRepository,
    seed_subjects,
)
from services.deathwatch_api.infrastructure.timers import (
    ApschedulerDeferredRequester,
    ApschedulerRepeatingTimer,
    UnavailableDeferredRequester,
    build_background_scheduler,
)
from services.deathwatch_api.settings import Settings, get_settings


@dataclass
class Container:
    """Process-wide service graph, built once and handed to the HTTP layer."""

    settings: Settings
    subjects: InMemorySubjectRepository
    events: EventBus
    poll_executor: PollExecutor
    dispatcher: NotificationDispatcher
    scheduler: DeathCheckScheduler
    background: BackgroundScheduler


def build_container(
    settings: Settings,
    lookup: DeathDateLookup | None = None,
    push_notifier: PushNotifier | None = None,
    seed: bool | None = None,
) -> Container:
    subjects = InMemorySubjectRepository()
    should_seed = settings.seed_subjects if seed is None else seed
    if should_seed:
        seed_subjects(subjects)

    events = EventBus()
    poll_executor = PollExecutor(
        subject_repository=subjects,
        lookup=lookup or WikidataDeathDateLookup(timeout_sec=settings.lookup_timeout_sec),
        lookup_timeout_sec=settings.lookup_timeout_sec,
        max_workers=settings.max_workers,
    )
    dispatcher = NotificationDispatcher(
        push_notifier=push_notifier or _build_push_notifier(settings),
        event_bus=events,
        state=DispatchState(notifications_enabled=settings.notifications_enabled),
    )

    background = build_background_scheduler()
    deferred: DeferredExecutionRequester
    if settings.deferred_requests:
        deferred = ApschedulerDeferredRequester(background)
    else:
        deferred = UnavailableDeferredRequester()
    scheduler = DeathCheckScheduler(
        poll_executor=poll_executor,
        dispatcher=dispatcher,
        repeating_timer=ApschedulerRepeatingTimer(background),
        deferred_requester=deferred,
        cadence=settings.cadence,
    )
    return Container(
        settings=settings,
        subjects=subjects,
        events=events,
        poll_executor=poll_executor,
        dispatcher=dispatcher,
        scheduler=scheduler,
        background=background,
    )


def _build_push_notifier(settings: Settings) -> PushNotifier:
    if settings.push_webhook_url:
        return WebhookPushNotifier(
            url=settings.push_webhook_url,
            timeout_sec=settings.lookup_timeout_sec,
        )
    return LoggingPushNotifier()


container = build_container(get_settings())


def get_container() -> Container:
    return container


def reset_state(
    lookup: DeathDateLookup | None = None,
    push_notifier: PushNotifier | None = None,
) -> Container:
    """Rebuild the service graph with an empty registry."""
    global container
    container.scheduler.stop()
    if container.background.running:
        container.background.shutdown(wait=False)
    container = build_container(
        get_settings(),
        lookup=lookup,
        push_notifier=push_notifier,
        seed=False,
    )
    return container

#!/usr/bin/env python3
"""Song A Day - engine and entry point

The engine turns an OAuth callback into a running per-user schedule and
brings every stored user back on start-up.
"""

import argparse
import logging
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from songaday.api.spotify import SpotifyAPI, SpotifyAuth
from songaday.config import load_config_from_env, validate_config, get_data_dir
from songaday.errors import AuthError, PublishError
from songaday.models.aggregate import UserAggregate
from songaday.models.config_models import SongADayConfig
from songaday.monitoring.metrics import setup_metrics
from songaday.notify import MessageBuilder, Notifier, NotificationKind, build_notifier
from songaday.scheduler.refresh import (
    CycleOutcome, CycleResult, SchedulerRegistry, UserScheduler
)
from songaday.storage.aggregates import AggregateStore
from songaday.utils.logging_config import setup_logging
from songaday.web.health import write_health_status


logger = logging.getLogger(__name__)

DB_FILENAME = "songaday.db"


@dataclass
class AuthorisationResult:
    """What the /callback request answers with"""
    ok: bool
    status: int
    message: str
    user_id: Optional[str] = None


class SongADayEngine:
    """Wires storage, Spotify clients, notifier and schedulers together."""

    def __init__(
        self,
        config: SongADayConfig,
        store: AggregateStore,
        api: SpotifyAPI,
        auth: SpotifyAuth,
        notifier: Notifier,
        registry: Optional[SchedulerRegistry] = None,
    ):
        self.config = config
        self.store = store
        self.api = api
        self.auth = auth
        self.notifier = notifier
        self.registry = registry or SchedulerRegistry()
        self.messages = MessageBuilder(config.curation.host_url, config.curation.year)

    @classmethod
    def from_config(cls, config: SongADayConfig) -> "SongADayEngine":
        data_dir = get_data_dir(config)
        return cls(
            config=config,
            store=AggregateStore(data_dir / DB_FILENAME),
            api=SpotifyAPI(config.spotify.api_url),
            auth=SpotifyAuth(
                config.spotify.client_id,
                config.spotify.client_secret,
                config.spotify.redirect_uri,
                accounts_url=config.spotify.accounts_url,
            ),
            notifier=build_notifier(config.notify.webhook_url),
        )

    def _notify(self, kind: NotificationKind, user_id: str, notify_ref: Optional[str]) -> None:
        try:
            self.notifier.notify(self.messages.build(kind, user_id, notify_ref))
        except Exception as e:
            logger.warning("%s: notifier raised: %s", user_id, e)

    def create_scheduler(self, aggregate: UserAggregate) -> UserScheduler:
        scheduler = UserScheduler(
            aggregate,
            store=self.store,
            api=self.api,
            auth=self.auth,
            notifier=self.notifier,
            messages=self.messages,
            tz=self.config.curation.tz,
            interval=self.config.scheduling.interval_seconds,
            max_pages=self.config.scheduling.max_history_pages,
        )
        self.registry.register(scheduler)
        return scheduler

    def authorise(self, code: str, notify_ref: Optional[str] = None) -> AuthorisationResult:
        """Handle an OAuth callback.

        Exchanges the code, finds or creates the user's aggregate and
        playlist, then starts their schedule. The first cycle runs before
        this returns so an immediate auth failure can be answered with 401.
        Every failure is also sent to the user through the notifier.
        """
        try:
            credentials = self.auth.exchange_code(code)
        except AuthError as e:
            logger.error("?: %s", e)
            self._notify(NotificationKind.AUTH_FAILED, "?", notify_ref)
            return AuthorisationResult(False, 401, "Authorisation error")

        try:
            user_id = self.api.get_current_user(credentials.access_token)
        except AuthError as e:
            logger.error("?: %s", e)
            self._notify(NotificationKind.USER_LOOKUP_FAILED, "?", notify_ref)
            return AuthorisationResult(False, 401, "Couldn't get user id")

        # the old schedule must be idle before its record is read and replaced
        if self.registry.stop(user_id):
            logger.info("%s: previous schedule stopped", user_id)

        year = self.config.curation.year
        aggregate = self.store.load(user_id, year)
        if aggregate is not None:
            aggregate = aggregate.model_copy(update={
                "credentials": credentials,
                "notify_ref": notify_ref or aggregate.notify_ref,
            })
            logger.info("%s: re-authorised, keeping playlist %s", user_id, aggregate.playlist_id)
        else:
            try:
                playlist_id = self.api.create_playlist(
                    user_id,
                    credentials.access_token,
                    self.config.curation.playlist_name,
                    self.config.curation.playlist_description,
                )
            except PublishError as e:
                logger.error("%s: %s", user_id, e)
                self._notify(NotificationKind.PLAYLIST_CREATE_FAILED, user_id, notify_ref)
                return AuthorisationResult(False, 401, "Couldn't create playlist", user_id)
            aggregate = UserAggregate(
                user_id=user_id,
                playlist_id=playlist_id,
                year=year,
                credentials=credentials,
                notify_ref=notify_ref,
            )
            logger.info("%s: new user, playlist %s", user_id, playlist_id)

        self.store.save(aggregate)
        self._notify(NotificationKind.AUTHORISED, user_id, aggregate.notify_ref)

        result = self.create_scheduler(aggregate).start()
        if result.outcome is CycleOutcome.AUTH_FAILED:
            return AuthorisationResult(False, 401, "Authorisation error", user_id)
        return AuthorisationResult(True, 200, "Successfully authorised", user_id)

    def restorable(self) -> List[UserAggregate]:
        """Stored aggregates of the configured year that still need cycles."""
        return [a for a in self.store.load_all(self.config.curation.year) if not a.terminal]

    def restore(self) -> int:
        """Start a schedule for every stored, unfinished user.

        Each first cycle runs on its own thread so start-up does not wait
        on every user's history and retries.

        Returns:
            Number of schedules started
        """
        started = 0
        for aggregate in self.restorable():
            logger.info("%s: restoring schedule", aggregate.user_id)
            scheduler = self.create_scheduler(aggregate)
            threading.Thread(
                target=scheduler.start,
                name=f"songaday-restore-{aggregate.user_id}",
                daemon=True,
            ).start()
            started += 1
        logger.info("Restored %d schedules", started)
        return started

    def run_once(self) -> List[CycleResult]:
        """One cycle for every stored, unfinished user, without scheduling."""
        results = []
        for aggregate in self.restorable():
            scheduler = UserScheduler(
                aggregate,
                store=self.store,
                api=self.api,
                auth=self.auth,
                notifier=self.notifier,
                messages=self.messages,
                tz=self.config.curation.tz,
                max_pages=self.config.scheduling.max_history_pages,
            )
            results.append(scheduler.run_cycle())
        return results

    def shutdown(self) -> None:
        self.registry.stop_all()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Song A Day - your year of listening as a playlist",
        epilog="Configure via environment variables - see SPOTIFY_*, HOST_URL, SONGADAY_*"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one cycle for every stored user and exit"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL"
    )
    args = parser.parse_args()

    setup_logging(log_level=(args.log_level or "INFO").upper())

    config = validate_config(load_config_from_env())
    if config is None:
        sys.exit(1)

    setup_logging(
        log_level=(args.log_level or config.logging.level).upper(),
        log_format=config.logging.format,
        log_file=Path(config.logging.file) if config.logging.file else None,
    )

    data_dir = get_data_dir(config)
    engine = SongADayEngine.from_config(config)

    if args.once:
        results = engine.run_once()
        failed = [r for r in results if not r.ok]
        logger.info("Ran %d cycles, %d failed", len(results), len(failed))
        write_health_status(data_dir, "healthy" if not failed else "degraded",
                            f"{len(results)} cycles, {len(failed)} failed")
        sys.exit(1 if failed else 0)

    try:
        setup_metrics(enabled=config.monitoring.metrics_enabled,
                      port=config.monitoring.metrics_port)
    except Exception as e:
        logger.warning("Failed to initialize metrics: %s", e)

    if config.web.enabled:
        from songaday.web.app import start_web_server
        start_web_server(engine, port=config.web.port, threaded=True)
        logger.info("🌐 Authorise at %s/authorise", config.curation.host_url)

    logger.info("=" * 70)
    logger.info("SONG A DAY %d", config.curation.year)
    logger.info("=" * 70)
    logger.info("Refresh interval: %ds", config.scheduling.interval_seconds)
    logger.info("Timezone: %s", config.curation.timezone)
    logger.info("=" * 70)

    engine.restore()
    write_health_status(data_dir, "running",
                        f"{engine.registry.active_count()} active schedules")

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    try:
        while not stop.wait(60):
            write_health_status(data_dir, "running",
                                f"{engine.registry.active_count()} active schedules")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        engine.shutdown()
        write_health_status(data_dir, "stopped", "Shut down")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logger.error("Startup failed: %s", e, exc_info=True)
        sys.exit(1)

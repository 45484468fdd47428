import asyncio
import logging
import signal

from . import config
from .activity import ActivityLog
from .bluos import BluOSClient, PlaybackWatcher
from .engine import ScrobbleDecisionEngine
from .listenbrainz_client import ListenBrainzClient
from .mbid_cache import MetadataCache
from .musicbrainz import MetadataResolver
from .notifier import from_env as webhook_notifier_from_env
from .notifier_gotify import from_env as gotify_notifier_from_env
from .scrobble_queue import RetryQueue

log = logging.getLogger("bluos-listenbrainz")


def setup_logging(settings: config.Settings) -> None:
    level = logging.DEBUG if settings.debug_logging else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))


async def run(settings: config.Settings) -> None:
    if not settings.listenbrainz_token:
        log.warning("LISTENBRAINZ_TOKEN is not set; nothing will be scrobbled until it is")

    # Fan out to both; each will ignore if not configured or below min_level
    activity = ActivityLog([webhook_notifier_from_env(), gotify_notifier_from_env()])

    client = ListenBrainzClient(settings.listenbrainz_api_url)
    queue = RetryQueue(client, settings.queue_path, settings.queue_limit,
                       token=settings.listenbrainz_token, activity=activity)
    cache = MetadataCache(settings.cache_path, settings.cache_limit)
    resolver = MetadataResolver(settings.musicbrainz_api_url, settings.musicbrainz_user_agent)

    watcher = PlaybackWatcher(BluOSClient(settings.bluos_host, settings.bluos_port))
    engine = ScrobbleDecisionEngine(settings, queue, cache, resolver, client=client,
                                    activity=activity, now_playing=watcher.now_playing)
    watcher.engine = engine

    log.info("Starting BluOS → ListenBrainz bridge. Poll interval: %ss", config.SAMPLE_INTERVAL)
    log.info("BluOS device: %s:%s | Queue: %s (limit=%s, size=%s) | MBID cache: %s (%s entries)",
             settings.bluos_host, settings.bluos_port, settings.queue_path, settings.queue_limit,
             queue.size(), settings.cache_path, len(cache))
    activity.info(f"Polling {settings.bluos_host}:{settings.bluos_port}; queue {settings.queue_path}.",
                  title="Bridge started")

    # Pick up anything left over from the last run
    queue.resume()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    try:
        while not stop.is_set():
            try:
                await watcher.poll_once()
            except Exception as e:
                log.warning("Poll cycle failed: %s", e)
            try:
                await asyncio.wait_for(stop.wait(), timeout=config.SAMPLE_INTERVAL)
            except asyncio.TimeoutError:
                pass
    finally:
        log.info("Shutting down… (%s scrobbles pending)", queue.size())
        await engine.close()
        await queue.stop()


def main():
    settings = config.from_env()
    setup_logging(settings)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        log.info("Shutting down…")


if __name__ == "__main__":
    main()

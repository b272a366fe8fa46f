from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone

from records.realtime.feed import REFRESH_GROUP, current_sequences
from records.services.analytics import ANALYTICS_CACHE_KEY, analytics_data
from records.services.dashboard import DASHBOARD_CACHE_KEY, dashboard_stats, stats_cache_key


class Command(BaseCommand):
    help = "Warm the dashboard and analytics caches; broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        seqs = current_sequences()
        keys_refreshed = []

        for base, build in ((DASHBOARD_CACHE_KEY, dashboard_stats), (ANALYTICS_CACHE_KEY, analytics_data)):
            key = stats_cache_key(base, seqs)
            cache.set(key, {'ok': True, 'data': build(now)}, settings.STATS_CACHE_SECONDS)
            keys_refreshed.append(key)

        channel_layer = get_channel_layer()
        if channel_layer is not None:
            # every feed connection is in this group exactly once
            async_to_sync(channel_layer.group_send)(REFRESH_GROUP, {
                "type": "broadcast.refresh", "ts": now.isoformat(), "keys": keys_refreshed,
            })

        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))

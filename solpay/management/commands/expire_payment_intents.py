from django.core.management.base import BaseCommand
from loguru import logger

from solpay.store import expire_stale_intents


class Command(BaseCommand):
    help = 'Mark pending or failed payment intents past their window as expired.'

    def handle(self, *args, **options):
        count = expire_stale_intents()
        logger.info('Expired {} stale payment intents', count)
        self.stdout.write(f'{count} payment intents expired')

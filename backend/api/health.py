import asyncio
import time
from typing import Dict, Any
from datetime import datetime, timezone
import logging
import os

from .logging_config import ExternalServiceError, DatabaseError

logger = logging.getLogger(__name__)

def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

class HealthChecker:
    """Health checking for the store and the reminder integrations"""

    async def run_all_checks(self, store, notifier) -> Dict[str, Any]:
        """Run all health checks and return comprehensive status"""
        start_time = time.time()
        checks = {
            'database': lambda: self._check_database(store),
            'notifications': lambda: self._check_notifications(notifier),
            'sentry': self._check_sentry
        }

        # Run checks concurrently
        tasks = [
            asyncio.create_task(self._run_single_check(name, check))
            for name, check in checks.items()
        ]
        check_results = await asyncio.gather(*tasks)

        results = dict(zip(checks.keys(), check_results))
        overall_healthy = all(result['healthy'] for result in results.values())

        total_time = int((time.time() - start_time) * 1000)

        return {
            'status': 'healthy' if overall_healthy else 'degraded',
            'timestamp': utc_timestamp(),
            'response_time_ms': total_time,
            'checks': results,
            'version': '1.0.0',
            'environment': os.environ.get('ENVIRONMENT', 'unknown')
        }

    async def _run_single_check(self, name: str, check_func) -> Dict[str, Any]:
        """Run a single health check with timing"""
        start_time = time.time()
        try:
            result = await check_func()
            response_time = int((time.time() - start_time) * 1000)
            return {
                'status': 'ok',
                'healthy': True,
                'response_time_ms': response_time,
                **result
            }
        except Exception as e:
            response_time = int((time.time() - start_time) * 1000)
            logger.error(f"Health check failed for {name}: {e}")
            return {
                'status': 'error',
                'healthy': False,
                'error': str(e),
                'response_time_ms': response_time
            }

    async def _check_database(self, store) -> Dict[str, Any]:
        """Check record store connectivity"""
        if not store.ping():
            raise DatabaseError("health_check", "store did not answer the probe")

        return {
            'connection': 'ok',
            'backend': type(store).__name__,
            'last_check': utc_timestamp()
        }

    async def _check_notifications(self, notifier) -> Dict[str, Any]:
        """Report which notification sink is configured"""
        if notifier is None:
            return {
                'connection': 'disabled',
                'details': 'No notification sink configured'
            }

        return {
            'connection': 'ok',
            'sink': type(notifier).__name__
        }

    async def _check_sentry(self) -> Dict[str, Any]:
        """Check Sentry error tracking service"""
        dsn = os.environ.get("SENTRY_DSN")
        if not dsn:
            return {
                'connection': 'disabled',
                'details': 'Sentry not configured'
            }

        try:
            import sentry_sdk

            # Test Sentry configuration (without actually sending an error)
            if not sentry_sdk.get_client().is_active():
                raise Exception("Sentry client not initialized")

            return {
                'connection': 'ok',
                'dsn_configured': True,
                'details': 'Sentry error tracking service configured'
            }

        except Exception as e:
            raise ExternalServiceError("Sentry", str(e))

class MetricsCollector:
    """Collect application metrics for monitoring"""

    def __init__(self):
        self.start_time = time.time()
        self.request_count = 0
        self.error_count = 0
        self.doses_resolved = 0
        self.courses_created = 0

    def get_metrics(self) -> Dict[str, Any]:
        """Get current application metrics"""
        uptime_seconds = int(time.time() - self.start_time)

        return {
            'uptime_seconds': uptime_seconds,
            'uptime_human': self._format_uptime(uptime_seconds),
            'requests_total': self.request_count,
            'errors_total': self.error_count,
            'error_rate': self.error_count / max(self.request_count, 1),
            'courses_created_total': self.courses_created,
            'doses_resolved_total': self.doses_resolved,
            'memory_usage': self._get_memory_usage(),
            'timestamp': utc_timestamp()
        }

    def increment_requests(self):
        """Increment request counter"""
        self.request_count += 1

    def increment_errors(self):
        """Increment error counter"""
        self.error_count += 1

    def _format_uptime(self, seconds: int) -> str:
        """Format uptime in human readable format"""
        days = seconds // 86400
        hours = (seconds % 86400) // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60

        if days > 0:
            return f"{days}d {hours}h {minutes}m {secs}s"
        elif hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"

    def _get_memory_usage(self) -> Dict[str, Any]:
        """Get memory usage information"""
        try:
            import psutil
            process = psutil.Process()
            memory_info = process.memory_info()

            return {
                'rss_bytes': memory_info.rss,
                'rss_mb': round(memory_info.rss / 1024 / 1024, 2),
                'vms_bytes': memory_info.vms,
                'vms_mb': round(memory_info.vms / 1024 / 1024, 2)
            }
        except Exception as e:
            return {
                'error': str(e)
            }

# Global instances
health_checker = HealthChecker()
metrics_collector = MetricsCollector()

"""
Health Check Service

Provides health monitoring for the DOB service dependencies
(MongoDB, Redis, AMQP) and basic process metrics.
"""

import os
import time
import psutil
from typing import Dict, Any, Optional
from opentelemetry import trace

from models.base import utc_now
from services.mongodb import MongoDBService
from services.redis import RedisService
from services.amqp import AMQPService

tracer = trace.get_tracer(__name__)

SERVICE_NAME = "dob-api"
SERVICE_VERSION = "1.0.0"


class HealthCheckService:
    """Service for dependency health monitoring."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        amqp_service: Optional[AMQPService] = None
    ):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.amqp_service = amqp_service

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            dependencies = {
                "mongodb": self._check_mongodb_health(),
                "redis": self._check_redis_health(),
                "amqp": self._check_amqp_health()
            }

            # The entry store is the only hard dependency
            overall_status = self._determine_overall_status(
                dependencies["mongodb"]["status"],
                [dependencies["redis"]["status"], dependencies["amqp"]["status"]]
            )

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": dependencies["mongodb"]["status"],
                "health.redis_status": dependencies["redis"]["status"],
                "health.amqp_status": dependencies["amqp"]["status"]
            })

            return {
                "status": overall_status,
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": utc_now().isoformat(),
                "response_time_ms": response_time_ms,
                "dependencies": dependencies,
                "system_metrics": self._get_system_metrics()
            }

    def _check_mongodb_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.mongodb_check") as span:
            health_info = self.mongodb_service.health_check()
            span.set_attribute("mongodb.status", health_info.get("status", "unknown"))
            health_info["last_check"] = utc_now().isoformat()
            return health_info

    def _check_redis_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.redis_check") as span:
            if self.redis_service is None:
                return {"status": "unavailable", "message": "Redis not configured"}

            health_info = self.redis_service.health_check()
            span.set_attribute("redis.status", health_info.get("status", "unknown"))
            health_info["last_check"] = utc_now().isoformat()
            return health_info

    def _check_amqp_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.amqp_check") as span:
            if self.amqp_service is None:
                return {"status": "unavailable", "message": "AMQP not configured"}

            start_time = time.time()
            is_healthy = self.amqp_service.health_check()
            status = "healthy" if is_healthy else "unhealthy"
            span.set_attribute("amqp.status", status)

            return {
                "status": status,
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "exchange": self.amqp_service.config.exchange,
                "last_check": utc_now().isoformat()
            }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic process metrics."""
        try:
            process = psutil.Process(os.getpid())
            memory = process.memory_info()

            return {
                "uptime_seconds": round(time.time() - process.create_time(), 2),
                "memory_rss_mb": round(memory.rss / 1024 / 1024, 2),
                "threads": process.num_threads(),
                "cpu_percent": psutil.cpu_percent(interval=None)
            }
        except psutil.Error as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    @staticmethod
    def _determine_overall_status(primary_status: str, secondary_statuses: list) -> str:
        """Unhealthy without the entry store, degraded without an auxiliary dependency."""
        if primary_status != "healthy":
            return "unhealthy"
        if all(status == "healthy" for status in secondary_statuses):
            return "healthy"
        return "degraded"

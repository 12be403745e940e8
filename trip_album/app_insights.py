"""
Application Insights integration for monitoring trip clustering.
"""
import os
import logging
from typing import Optional
from opencensus.ext.azure import metrics_exporter
from opencensus.ext.azure.log_exporter import AzureLogHandler
from opencensus.stats import aggregation as aggregation_module
from opencensus.stats import measure as measure_module
from opencensus.stats import stats as stats_module
from opencensus.stats import view as view_module
from opencensus.tags import tag_map as tag_map_module

logger = logging.getLogger(__name__)


class AppInsights:
    """Application Insights telemetry client."""

    def __init__(self, connection_string: Optional[str] = None):
        """Initialize Application Insights if a connection string is available."""
        self.connection_string = connection_string or os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING")
        self.enabled = bool(self.connection_string)

        if self.enabled:
            self._setup_logging()
            self._setup_metrics()
        else:
            logger.debug("Application Insights not configured (missing connection string)")

    def _setup_logging(self):
        """Attach the Azure log handler to the trip_album logger."""
        logging.getLogger("trip_album").addHandler(
            AzureLogHandler(connection_string=self.connection_string)
        )
        logger.info("Application Insights logging enabled")

    def _setup_metrics(self):
        self.stats = stats_module.stats
        self.view_manager = self.stats.view_manager

        self.photos_clustered = measure_module.MeasureInt(
            "photos_clustered",
            "Number of candidate photos fed to the cluster engine",
            "photos"
        )

        self.trips_created = measure_module.MeasureInt(
            "trips_created",
            "Number of trips created by auto-clustering",
            "trips"
        )

        self.cluster_failures = measure_module.MeasureInt(
            "cluster_failures",
            "Number of candidate groups that failed to become trips",
            "groups"
        )

        self.processing_time = measure_module.MeasureFloat(
            "processing_time",
            "Auto-clustering processing time",
            "seconds"
        )

        views = [
            view_module.View(
                "photos_clustered_view",
                "Total photos clustered",
                [],
                self.photos_clustered,
                aggregation_module.SumAggregation()
            ),
            view_module.View(
                "trips_created_view",
                "Total trips created",
                [],
                self.trips_created,
                aggregation_module.SumAggregation()
            ),
            view_module.View(
                "cluster_failures_view",
                "Total failed candidate groups",
                [],
                self.cluster_failures,
                aggregation_module.SumAggregation()
            ),
            view_module.View(
                "processing_time_view",
                "Last auto-clustering duration",
                [],
                self.processing_time,
                aggregation_module.LastValueAggregation()
            ),
        ]
        for view in views:
            self.view_manager.register_view(view)

        exporter = metrics_exporter.new_metrics_exporter(
            connection_string=self.connection_string
        )
        self.view_manager.register_exporter(exporter)

        logger.info("Application Insights metrics enabled")

    def _record_int(self, measure, count: int):
        mmap = self.stats.stats_recorder.new_measurement_map()
        mmap.measure_int_put(measure, count)
        mmap.record(tag_map_module.TagMap())

    def track_photos_clustered(self, count: int):
        if self.enabled:
            self._record_int(self.photos_clustered, count)
            logger.debug(f"Tracked: {count} photos clustered")

    def track_trips_created(self, count: int):
        if self.enabled:
            self._record_int(self.trips_created, count)
            logger.debug(f"Tracked: {count} trips created")

    def track_cluster_failures(self, count: int):
        if self.enabled:
            self._record_int(self.cluster_failures, count)
            logger.debug(f"Tracked: {count} failed groups")

    def track_processing_time(self, seconds: float):
        if self.enabled:
            mmap = self.stats.stats_recorder.new_measurement_map()
            mmap.measure_float_put(self.processing_time, seconds)
            mmap.record(tag_map_module.TagMap())
            logger.debug(f"Tracked: {seconds:.2f}s processing time")

    def track_event(self, event_name: str, properties: Optional[dict] = None):
        """Track custom event."""
        if self.enabled:
            props = properties or {}
            logger.info(f"Event: {event_name}", extra={"custom_dimensions": props})


# Global instance
app_insights = AppInsights()

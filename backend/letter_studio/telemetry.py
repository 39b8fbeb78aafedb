import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION

logger = logging.getLogger(__name__)


def setup_telemetry(service_name: str = "letter-studio-backend", service_version: str = "0.1.0"):
    """
    Configures the OpenTelemetry SDK so export spans and SQL spans are printed to the console.
    """
    try:
        resource = Resource(attributes={
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        })

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(tracer_provider)

        logger.info("OpenTelemetry configured with Console Exporter.")
        return tracer_provider

    except Exception as e:
        logger.error(f"Failed to configure OpenTelemetry: {e}", exc_info=True)
        return None

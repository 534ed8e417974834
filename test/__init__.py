# Set default logging handler to avoid "No handler found" warnings.
import logging
logging.basicConfig(level=logging.INFO)

from cloudpubsub.future import Future
Future.error_on_callbacks = True  # always fail during testing

"""Self-service Mailgun forwarding aliases for a chat community.

Usage:
    from mailbridge import Forwarder, MailgunRoutingStore

    store = MailgunRoutingStore("mg.example.org", api_key)
    forwarder = Forwarder(store, domain="mg.example.org", prefix="mailbridge:")
    await forwarder.start()
    result = await forwarder.forward("jdoe", "jdoe@elsewhere.example", "12345")
"""

from mailbridge.cache import RouteCache
from mailbridge.errors import ConflictError
from mailbridge.errors import ForwarderError
from mailbridge.errors import ProviderError
from mailbridge.errors import RandomnessError
from mailbridge.forwarder import ForwardResult
from mailbridge.forwarder import Forwarder
from mailbridge.passwords import generate_secret
from mailbridge.routes import RoutingRule
from mailbridge.routes import canonical_expression
from mailbridge.store import MailgunRoutingStore
from mailbridge.store import RoutingStore

__version__ = "0.1.0"
__all__ = [
    "ConflictError",
    "ForwardResult",
    "Forwarder",
    "ForwarderError",
    "MailgunRoutingStore",
    "ProviderError",
    "RandomnessError",
    "RouteCache",
    "RoutingRule",
    "RoutingStore",
    "__version__",
    "canonical_expression",
    "generate_secret",
]

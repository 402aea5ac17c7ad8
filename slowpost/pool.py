"""
Client pool: N independent slow POST clients on one event loop.
"""
import dataclasses
import logging

from .client import SlowPostClient

logger = logging.getLogger(__name__)


class ClientPool:
    """Creates and starts clients. Clients never talk to each other."""

    def __init__(self, client_factory=SlowPostClient):
        self.client_factory = client_factory
        self.clients = []

    def spawn(self, count, options):
        """
        Create count clients from the shared options and start each one.

        Every client gets its own copy of the configuration, identical except
        for the display name ("Client #1" .. "Client #<count>"). Must be
        called with a running event loop.
        """
        new_clients = []
        for n in range(1, count + 1):
            config = dataclasses.replace(options, name=f"Client #{n}")
            new_clients.append(self.client_factory(config))

        target = f"{options.host}:{options.port}"
        if options.proxy:
            target += " via SOCKS proxy %s:%d" % options.proxy
        logger.debug("Starting %d clients against %s", count, target)

        for client in new_clients:
            client.connect()
        self.clients.extend(new_clients)
        return new_clients

    def stop(self):
        """Stop all clients (used on interrupt; normally the process is just killed)."""
        for client in self.clients:
            client.stop()

    def __len__(self):
        return len(self.clients)

"""vCenter session handling"""

import atexit
import logging
import socket
import ssl
from typing import Callable, Optional

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim

from vsan_ops.errors import ConnectionFailure, describe_vcenter_error
from vsan_ops.utils import console_log

logger = logging.getLogger(__name__)


class VCenterSession:
    """
    One authenticated connection to a vCenter server.

    The session is created once per command and handed to every collaborator
    that needs the vSphere API; nothing is kept in module globals.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = 443,
        verify_ssl: bool = False,
        logger: Optional[Callable] = None,
        connect_fn: Callable = SmartConnect,
        disconnect_fn: Callable = Disconnect,
    ):
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.verify_ssl = verify_ssl
        self.log = logger or console_log
        self._connect_fn = connect_fn
        self._disconnect_fn = disconnect_fn
        self.service_instance = None

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def connect(self, force_reconnect: bool = False):
        """Connect to vCenter if not already connected.

        Returns:
            The pyVmomi service instance

        Raises:
            ConnectionFailure: vCenter unreachable or credentials rejected
        """
        if self.service_instance is not None and not force_reconnect:
            return self.service_instance
        if force_reconnect:
            self.disconnect()

        self.log(f"Attempting to connect to vCenter at {self.host}...")
        old_timeout = socket.getdefaulttimeout()
        socket.setdefaulttimeout(30)
        try:
            self.service_instance = self._connect_fn(
                host=self.host,
                user=self.user,
                pwd=self.password,
                port=self.port,
                sslContext=self._ssl_context(),
            )
        except Exception as e:
            self.log(f"✗ Failed to connect to vCenter: {describe_vcenter_error(e)}", "ERROR")
            raise ConnectionFailure(f"Failed to connect to vCenter {self.host}: {e}") from e
        finally:
            socket.setdefaulttimeout(old_timeout)

        atexit.register(self.disconnect)
        self.log(f"✓ Connected to vCenter at {self.host}")
        return self.service_instance

    def ensure_connected(self):
        """Return a live service instance, reconnecting if the session expired.

        Long waits (host reboots, evacuations) can outlive the vCenter session,
        so callers use this before touching the API after such a wait.
        """
        if self.service_instance is None:
            return self.connect()

        try:
            content = self.service_instance.RetrieveContent()
            if content.sessionManager.currentSession is not None:
                return self.service_instance
            self.log("vCenter session expired (no active session), reconnecting...", "WARN")
        except vim.fault.NotAuthenticated:
            self.log("vCenter session not authenticated, reconnecting...", "WARN")
        except Exception as e:
            self.log(f"vCenter connection check failed: {e}, reconnecting...", "WARN")

        return self.connect(force_reconnect=True)

    @property
    def content(self):
        return self.ensure_connected().RetrieveContent()

    def disconnect(self):
        if self.service_instance is None:
            return
        try:
            self._disconnect_fn(self.service_instance)
        except Exception as e:
            logger.debug("Ignoring disconnect error from %s: %s", self.host, e)
        self.service_instance = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

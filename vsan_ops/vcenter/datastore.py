"""Upload of patch bundles to a datastore through vCenter"""

import logging
import os
from typing import Callable, Optional
from urllib.parse import quote, urlencode

import requests
from pyVmomi import vim

from vsan_ops.errors import VsanOpsError
from vsan_ops.utils import console_log

logger = logging.getLogger(__name__)


def datastore_host_path(datastore_name: str, remote_path: str) -> str:
    """Path of a datastore file as seen from the ESXi shell."""
    return f"/vmfs/volumes/{datastore_name}/{remote_path.lstrip('/')}"


class DatastoreUploader:
    """Copies a local file to a datastore via the vCenter /folder endpoint."""

    def __init__(self, session, logger: Optional[Callable] = None, http=None):
        self.session = session
        self.log = logger or console_log
        self.http = http or requests

    def upload(self, local_path: str, datacenter_name: str, datastore_name: str,
               remote_dir: str = "patches") -> str:
        """
        Upload a local bundle and return its /vmfs/volumes path.

        Raises:
            FileNotFoundError: local file missing
            VsanOpsError: vCenter rejected the upload
        """
        if not os.path.isfile(local_path):
            raise FileNotFoundError(f"Patch bundle not found: {local_path}")

        remote_path = f"{remote_dir.strip('/')}/{os.path.basename(local_path)}"
        params = urlencode({"dcPath": datacenter_name, "dsName": datastore_name})
        upload_url = f"https://{self.session.host}/folder/{quote(remote_path)}?{params}"

        ticket = self.session.content.sessionManager.AcquireGenericServiceTicket(
            spec=vim.SessionManagerHttpServiceRequestSpec(method="PUT", url=upload_url)
        )
        headers = {
            "Cookie": f"vmware_cgi_ticket={ticket.id}",
            "Content-Type": "application/octet-stream",
        }

        size_mb = os.path.getsize(local_path) / (1024 * 1024)
        self.log(f"Uploading {local_path} ({size_mb:.1f} MB) to [{datastore_name}] {remote_path}...")
        with open(local_path, "rb") as bundle:
            response = self.http.put(upload_url, data=bundle, headers=headers,
                                     verify=self.session.verify_ssl)

        if not response.ok:
            logger.debug("Upload response body: %s", response.text[:2000])
            raise VsanOpsError(
                f"Upload of {local_path} to [{datastore_name}] failed: HTTP {response.status_code}"
            )

        self.log(f"✓ Uploaded bundle to [{datastore_name}] {remote_path}")
        return datastore_host_path(datastore_name, remote_path)

"""
IPFS Artifact Store — pins task results through Pinata.

store() never raises. When the credential is missing, the upload fails
or the response has no recognizable CID, a content id is derived locally
from a sha256 of the content so the pipeline keeps moving. The derived id
has the same shape as a real one ("bafy" + lowercase hex); callers that
need to know which path was taken read StoreResult.source.

Pinata API flavours (PINATA_API_VERSION):
    v1 — POST {PINATA_API_URL}/pinning/pinJSONToIPFS  (JSON envelope)
    v3 — POST {PINATA_UPLOADS_URL}/v3/files            (multipart file)
"""

import json
import time
import hashlib
import logging
from collections import namedtuple
from datetime import datetime, timezone

import requests

from service_errors import CidMissingError

logger = logging.getLogger(__name__)

CID_PREFIX = "bafy"
FALLBACK_HEX_LENGTH = 50
UPLOAD_TIMEOUT_SECONDS = 30
RESULT_FORMAT_VERSION = "1.0"

SOURCE_PINATA = "pinata"
SOURCE_FALLBACK = "fallback"

StoreResult = namedtuple("StoreResult", ["cid", "source", "error"])

PINATA_KEYS_URL = "https://app.pinata.cloud/developers/api-keys"
SCOPE_REMEDIATION = [
    f"Go to: {PINATA_KEYS_URL}",
    "Find your API key and click 'Edit'",
    "Enable the 'pinning' scope (v1) or 'org:files:write' (v3)",
    "Save and copy the new JWT token",
    "Update PINATA_JWT in your environment",
]


def fallback_cid(content):
    """Deterministic CID-shaped id: 'bafy' + first 50 hex chars of sha256(content)."""
    digest = hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()
    return CID_PREFIX + digest[:FALLBACK_HEX_LENGTH]


# Ordered CID extraction strategies; the provider's schema differs between API versions.
CID_FIELD_PATHS = [
    ("cid",),
    ("data", "cid"),
    ("IpfsHash",),
    ("Hash",),
    ("hash",),
]


def _lookup(payload, path):
    value = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_cid(payload):
    """Return the first non-empty CID among CID_FIELD_PATHS, else raise CidMissingError."""
    for path in CID_FIELD_PATHS:
        value = _lookup(payload, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise CidMissingError(f"Pinata response did not include a CID (keys: {sorted(payload) if isinstance(payload, dict) else type(payload).__name__})")


class ArtifactStore:
    def __init__(self, settings, session=None):
        self.jwt = settings.pinata_jwt
        self.api_version = settings.pinata_api_version
        self.api_url = settings.pinata_api_url
        self.uploads_url = settings.pinata_uploads_url
        self.gateway = settings.ipfs_gateway
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.jwt)

    def gateway_url(self, cid):
        return f"{self.gateway}/ipfs/{cid}"

    def _document(self, content):
        return {
            "result": content,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": RESULT_FORMAT_VERSION,
        }

    def _post_v1(self, content):
        body = {
            "pinataContent": self._document(content),
            "pinataMetadata": {"name": f"n4y-task-{int(time.time() * 1000)}.json"},
        }
        return self.session.post(
            f"{self.api_url}/pinning/pinJSONToIPFS",
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {self.jwt}"},
            json=body,
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )

    def _post_v3(self, content, filename=None, content_type="application/json"):
        if content_type == "application/json":
            data = json.dumps(self._document(content), indent=2)
        else:
            data = content
        filename = filename or f"n4y-task-result-{int(time.time() * 1000)}.json"
        return self.session.post(
            f"{self.uploads_url}/v3/files",
            headers={"Authorization": f"Bearer {self.jwt}"},
            files={"file": (filename, data.encode("utf-8", "surrogatepass"), content_type)},
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )

    def pin(self, content, **kwargs):
        """
        One upload attempt.
        Returns: (cid, error, status_code); cid is None when error is set.
        """
        if not self.jwt:
            return None, "PINATA_JWT not configured", None

        try:
            if self.api_version == "v3":
                resp = self._post_v3(content, **kwargs)
            else:
                resp = self._post_v1(content)
        except requests.RequestException as e:
            return None, f"Pinata request failed: {e}", None

        if not 200 <= resp.status_code < 300:
            if resp.status_code == 403:
                logger.error(
                    "pinata 403: API key is missing upload permission | %s",
                    " / ".join(SCOPE_REMEDIATION),
                )
            return None, f"Pinata API error: {resp.status_code} - {resp.text[:500]}", resp.status_code

        try:
            cid = extract_cid(resp.json())
        except ValueError as e:
            return None, f"Pinata returned malformed JSON: {e}", resp.status_code
        except CidMissingError as e:
            return None, str(e), resp.status_code

        return cid, None, resp.status_code

    def store(self, content):
        """Pin content; on any failure derive the id locally. Never raises."""
        cid, error, _ = self.pin(content)
        if cid:
            logger.info("result pinned | cid=%s url=%s", cid, self.gateway_url(cid))
            return StoreResult(cid, SOURCE_PINATA, None)

        derived = fallback_cid(content)
        logger.warning("pinning unavailable, using derived cid | cid=%s reason=%s", derived, error)
        return StoreResult(derived, SOURCE_FALLBACK, error)

    def probe(self):
        """Upload a small test file; used by the connectivity endpoint."""
        cid, error, status = self.pin(
            "This is a test file from N4Y Backend Service",
            **({"filename": "test.txt", "content_type": "text/plain"} if self.api_version == "v3" else {}),
        )
        return {
            "success": cid is not None,
            "testCid": cid,
            "error": error,
            "status": status,
            "apiVersion": self.api_version,
            "baseUrl": self.uploads_url if self.api_version == "v3" else self.api_url,
        }

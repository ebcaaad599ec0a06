"""Google Drive client: lists, downloads, uploads and trashes media files."""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from .. import config
from ..exceptions import DriveAuthError, DriveTransferError
from ..models import PendingUpload, SourceDescriptor

SCOPES = ["https://www.googleapis.com/auth/drive"]
FOLDER_MIME = "application/vnd.google-apps.folder"
AUTH_STATUSES = {401, 403}
RATE_LIMIT_STATUS = 429


def _status_of(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


def _escape_query(value: str) -> str:
    """Escape a value for use in a Google Drive API query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient:
    """
    Wraps the Drive v3 API.

    Errors are translated at this boundary: HTTP 401/403 and credential
    problems become DriveAuthError, everything else DriveTransferError.
    """

    def __init__(self,
                 credentials_file: Optional[Path] = None,
                 service: Any = None,
                 sleep: Callable[[float], None] = time.sleep):
        if service is None:
            try:
                creds = service_account.Credentials.from_service_account_file(
                    str(credentials_file), scopes=SCOPES
                )
            except (OSError, ValueError, GoogleAuthError) as e:
                raise DriveAuthError(f"Cannot load Google credentials from {credentials_file}: {e}") from e
            service = build("drive", "v3", credentials=creds, cache_discovery=False)
        self._service = service
        self._sleep = sleep

    # --- listing ---

    def list_files(self, folder_id: str = "root") -> List[SourceDescriptor]:
        """Binary files directly inside folder_id. Folders and Google Docs are skipped."""
        descriptors = []
        page_token = None
        query = f"'{_escape_query(folder_id)}' in parents and trashed=false"
        while True:
            resp = self._execute(
                self._service.files().list(
                    q=query,
                    fields="nextPageToken, files(id, name, mimeType, size)",
                    pageSize=1000,
                    pageToken=page_token,
                ),
                f"list folder {folder_id}",
            )
            for item in resp.get("files", []):
                mime = item.get("mimeType", "")
                if mime == FOLDER_MIME or mime.startswith("application/vnd.google-apps."):
                    logging.debug(f"Skipping non-binary drive entry: {item.get('name')} ({mime})")
                    continue
                descriptors.append(SourceDescriptor.from_drive(item))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break

        logging.info(f"Listed {len(descriptors)} files in drive folder {folder_id}")
        return descriptors

    # --- download ---

    def download(self, descriptor: SourceDescriptor, dest_dir: Path) -> Path:
        """Downloads the file into dest_dir under its drive name. Returns the local path."""
        local_path = dest_dir / descriptor.name
        local_path.parent.mkdir(parents=True, exist_ok=True)

        request = self._service.files().get_media(fileId=descriptor.external_id)
        try:
            with open(local_path, "wb") as f:
                downloader = MediaIoBaseDownload(f, request)
                done = False
                while not done:
                    _, done = downloader.next_chunk()
        except HttpError as e:
            local_path.unlink(missing_ok=True)
            raise self._translate(e, f"download {descriptor.name}") from e
        except OSError as e:
            local_path.unlink(missing_ok=True)
            raise DriveTransferError(f"download {descriptor.name} failed: {e}") from e

        logging.debug(f"Downloaded {descriptor.name} -> {local_path}")
        return local_path

    # --- upload ---

    def upload(self, pending: PendingUpload, folder_id: str) -> str:
        """
        Uploads one file with its content hash stored in appProperties.
        Retries rate limits and transient failures; auth errors are raised immediately.
        Returns the new drive file id.
        """
        meta: Dict[str, Any] = {
            "name": pending.name,
            "mimeType": pending.mime_type,
            "parents": [folder_id],
            "description": f"Uploaded by memory-sync ({pending.kind.value})",
            "appProperties": {"file_hash": pending.file_hash},
        }
        if pending.capture_time:
            meta["createdTime"] = pending.capture_time.isoformat()

        last_error: Optional[Exception] = None
        for attempt in range(1, config.UPLOAD_MAX_ATTEMPTS + 1):
            try:
                media = MediaFileUpload(str(pending.path), mimetype=pending.mime_type, resumable=True)
                request = self._service.files().create(body=meta, media_body=media, fields="id")
                response = None
                while response is None:
                    _, response = request.next_chunk()
                logging.info(f"Uploaded {pending.name} (id={response['id']})")
                return response["id"]
            except HttpError as e:
                status = _status_of(e)
                if status in AUTH_STATUSES:
                    raise DriveAuthError(f"upload {pending.name} rejected (HTTP {status})") from e
                last_error = e
                backoff = (config.UPLOAD_RATE_LIMIT_BACKOFF_SEC if status == RATE_LIMIT_STATUS
                           else config.UPLOAD_RETRY_BACKOFF_SEC) * attempt
            except GoogleAuthError as e:
                raise DriveAuthError(f"upload {pending.name}: credentials rejected: {e}") from e
            except OSError as e:
                last_error = e
                backoff = config.UPLOAD_RETRY_BACKOFF_SEC * attempt

            if attempt < config.UPLOAD_MAX_ATTEMPTS:
                logging.warning(
                    f"Upload attempt {attempt}/{config.UPLOAD_MAX_ATTEMPTS} for {pending.name} failed: "
                    f"{last_error}; retrying in {backoff:.0f}s"
                )
                self._sleep(backoff)

        raise DriveTransferError(
            f"upload {pending.name} failed after {config.UPLOAD_MAX_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    # --- delete ---

    def delete(self, remote_id: str):
        """Moves the file to the drive trash (recoverable)."""
        self._execute(
            self._service.files().update(fileId=remote_id, body={"trashed": True}, fields="id"),
            f"trash {remote_id}",
        )
        logging.info(f"Trashed drive file {remote_id}")

    def delete_by_hash(self, file_hash: str) -> int:
        """Trashes every drive file uploaded with this content hash. Returns the count."""
        query = (
            f"appProperties has {{ key='file_hash' and value='{_escape_query(file_hash)}' }} "
            f"and trashed=false"
        )
        resp = self._execute(
            self._service.files().list(q=query, fields="files(id, name)"),
            f"find files with hash {file_hash[:12]}",
        )
        files = resp.get("files", [])
        for item in files:
            self.delete(item["id"])
        return len(files)

    # --- helpers ---

    def _execute(self, request, action: str) -> Dict[str, Any]:
        try:
            return request.execute()
        except HttpError as e:
            raise self._translate(e, action) from e
        except GoogleAuthError as e:
            raise DriveAuthError(f"{action}: credentials rejected: {e}") from e
        except OSError as e:
            raise DriveTransferError(f"{action} failed: {e}") from e

    def _translate(self, error: HttpError, action: str) -> Exception:
        status = _status_of(error)
        if status in AUTH_STATUSES:
            return DriveAuthError(f"{action} rejected (HTTP {status})")
        return DriveTransferError(f"{action} failed (HTTP {status}): {error}")

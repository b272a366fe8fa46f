"""
Thin ``requests`` wrapper around the records REST API.

Every call returns the decoded ``data`` part of the envelope; list calls
also return the table sequence number the snapshot was taken at.  Any
non-2xx answer raises :class:`ApiError` carrying the server's
structured error code.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiError(Exception):
    def __init__(self, status: int, code: str, message: str):
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


class RecordsClient:
    def __init__(self, base_url: str, token: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token = token
        self.refresh_token: Optional[str] = None

    # transport

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f"Token {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise ApiError(0, 'network_error', str(exc)) from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            error = (body or {}).get('error') if isinstance(body, dict) else None
            if isinstance(error, dict):
                raise ApiError(resp.status_code, error.get('code') or 'error', error.get('message') or '')
            raise ApiError(resp.status_code, f"http_{resp.status_code}", resp.text[:200])
        return body if isinstance(body, dict) else {}

    # session

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        body = self._request('POST', '/api/auth/login', json={'email': email, 'password': password})
        self.token = body.get('token')
        self.refresh_token = body.get('jwt_refresh')
        return body

    def sign_out(self) -> None:
        payload = {'refresh': self.refresh_token} if self.refresh_token else {}
        try:
            self._request('POST', '/api/auth/logout', json=payload)
        finally:
            self.token = None
            self.refresh_token = None

    def current_user(self) -> Dict[str, Any]:
        return self._request('GET', '/api/auth/session')['user']

    def resend_confirmation(self, email: str) -> None:
        self._request('POST', '/api/auth/resend-confirmation', json={'email': email})

    # records

    def _list(self, path: str, params: Optional[dict] = None) -> Tuple[int, List[dict]]:
        body = self._request('GET', path, params=params)
        return int(body.get('seq') or 0), list(body.get('data') or [])

    def list_patients(self, search: Optional[str] = None, gender: Optional[str] = None) -> Tuple[int, List[dict]]:
        params = {k: v for k, v in (('search', search), ('gender', gender)) if v}
        return self._list('/api/patients', params)

    def lookup_patients(self, q: str) -> List[dict]:
        return self._request('GET', '/api/patients/lookup', params={'q': q}).get('data') or []

    def add_patient(self, payload: dict) -> dict:
        return self._request('POST', '/api/patients', json=payload)['data']

    def delete_patient(self, patient_id: str) -> None:
        self._request('DELETE', f"/api/patients/{patient_id}")

    def list_prescriptions(self) -> Tuple[int, List[dict]]:
        return self._list('/api/prescriptions')

    def add_prescription(self, payload: dict) -> List[dict]:
        return self._request('POST', '/api/prescriptions', json=payload)['data']

    def list_lab_reports(self) -> Tuple[int, List[dict]]:
        return self._list('/api/lab-reports')

    def add_lab_report(self, payload: dict) -> List[dict]:
        return self._request('POST', '/api/lab-reports', json=payload)['data']

    def dashboard(self) -> dict:
        return self._request('GET', '/api/dashboard')['data']

    def analytics(self) -> dict:
        return self._request('GET', '/api/analytics')['data']

"""Client configuration emitted after bring-up."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..utils import generate_token, read_yaml_file, write_yaml_file
from .models import BasicAuth

logger = logging.getLogger("rackctl.kubeconfig")

API_PORT = 8080
DEFAULT_USER = 'admin'


def server_url(master_ip: str) -> str:
    return f"http://{master_ip}:{API_PORT}"


def _read_kubeconfig(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = read_yaml_file(str(path))
    return data if isinstance(data, dict) else {}


def _named(entries: Optional[List[Dict[str, Any]]], name: str) -> Optional[Dict[str, Any]]:
    for entry in entries or []:
        if entry.get('name') == name:
            return entry
    return None


def stored_basic_auth(path: Path, context: str) -> Optional[BasicAuth]:
    """Credentials of the user bound to ``context`` in an existing kubeconfig."""
    data = _read_kubeconfig(path)
    ctx = _named(data.get('contexts'), context)
    if not ctx:
        return None
    user_name = (ctx.get('context') or {}).get('user')
    user = _named(data.get('users'), user_name) if user_name else None
    creds = (user or {}).get('user') or {}
    if creds.get('username') and creds.get('password'):
        return BasicAuth(user=creds['username'], password=creds['password'])
    return None


def load_or_generate_basic_auth(
    path: Path,
    context: str,
    environ: Optional[Mapping[str, str]] = None,
) -> BasicAuth:
    """Pick basic-auth credentials for the cluster.

    ``KUBE_USER``/``KUBE_PASSWORD`` win, then credentials already stored for
    the context, then a new ``admin`` user with a random password.
    """
    environ = os.environ if environ is None else environ
    if environ.get('KUBE_USER') and environ.get('KUBE_PASSWORD'):
        return BasicAuth(user=environ['KUBE_USER'], password=environ['KUBE_PASSWORD'])

    stored = stored_basic_auth(path, context)
    if stored:
        logger.info(f"🔐 Reusing basic-auth credentials for {stored.user} from {path}")
        return stored

    logger.info("🔐 Generating basic-auth credentials")
    return BasicAuth(user=DEFAULT_USER, password=generate_token(16))


def _upsert(entries: List[Dict[str, Any]], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    result = [e for e in entries if e.get('name') != entry['name']]
    result.append(entry)
    return result


def create_kubeconfig(path: Path, context: str, server: str, auth: BasicAuth) -> Path:
    """Write cluster, user and context entries named ``context`` and select it.

    Other entries already in the file are kept.
    """
    data = _read_kubeconfig(path)
    data.setdefault('apiVersion', 'v1')
    data.setdefault('kind', 'Config')
    data.setdefault('preferences', {})

    data['clusters'] = _upsert(data.get('clusters') or [], {
        'name': context,
        'cluster': {'server': server},
    })
    data['users'] = _upsert(data.get('users') or [], {
        'name': context,
        'user': {'username': auth.user, 'password': auth.password},
    })
    data['contexts'] = _upsert(data.get('contexts') or [], {
        'name': context,
        'context': {'cluster': context, 'user': context},
    })
    data['current-context'] = context

    write_yaml_file(str(path), data, mode=0o600)
    logger.info(f"✅ Wrote config for {context} to {path}")
    return path

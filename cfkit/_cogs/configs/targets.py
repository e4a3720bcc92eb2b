"""
Loading of the control-plane targets from a local YAML file.

The file lists the known control planes with their identities, and names
the current one -- similar to how kubeconfig files name the current context::

    current-target: dev
    targets:
      - name: dev
        url: https://api.dev.example.com
        username: admin
        password: secret
        origin: uaa
        space-guid: 1234-abcd
      - name: ci
        url: https://api.ci.example.com
        client-id: ci-bot
        client-secret: secret

The file is located via ``$CFKIT_TARGETS`` (several paths separated as
``$PATH`` is), or ``~/.cfkit/targets.yaml`` by default. If several files are
given, the first definition of every target wins, as does the first
``current-target``.
"""
import dataclasses
import os
from typing import Any, Dict, List, Mapping, Optional

import yaml

from cfkit._cogs.structs import credentials

DEFAULT_PATH = '~/.cfkit/targets.yaml'


@dataclasses.dataclass(frozen=True)
class Target:
    name: str
    url: str
    credentials: credentials.Credentials
    space_guid: Optional[str] = None


def get_paths(path: Optional[str] = None) -> List[str]:
    value = path or os.environ.get('CFKIT_TARGETS') or DEFAULT_PATH
    paths = [item.strip() for item in value.split(os.pathsep)]
    return [os.path.expanduser(item) for item in paths if item]


def load_target(
        path: Optional[str] = None,
        name: Optional[str] = None,
) -> Target:
    """
    Load the named target, or the current one if the name is not specified.
    """
    current_target: Optional[str] = None
    targets: Dict[str, Mapping[str, Any]] = {}
    for filepath in get_paths(path):
        try:
            with open(filepath, encoding='utf-8') as f:
                config = yaml.safe_load(f.read()) or {}
        except OSError as e:
            raise credentials.ConfigurationError(f"Cannot read the targets file {filepath}: {e}") from e
        except yaml.YAMLError as e:
            raise credentials.ConfigurationError(f"Cannot parse the targets file {filepath}: {e}") from e

        if not isinstance(config, dict):
            raise credentials.ConfigurationError(f"The targets file {filepath} is not a mapping.")
        if current_target is None:
            current_target = config.get('current-target')
        for item in config.get('targets') or []:
            if isinstance(item, dict) and item.get('name') and item['name'] not in targets:
                targets[item['name']] = item

    # Once fully parsed, use the requested or the current target only.
    name = name if name is not None else current_target
    if name is None:
        raise credentials.ConfigurationError("The current target is not set in the targets files.")
    if name not in targets:
        raise credentials.ConfigurationError(f"The target {name!r} is not defined in the targets files.")
    return parse_target(targets[name])


def parse_target(item: Mapping[str, Any]) -> Target:
    if not item.get('url'):
        raise credentials.ConfigurationError(f"The target {item.get('name')!r} has no URL.")

    token: Optional[credentials.Token] = None
    if item.get('access-token') or item.get('refresh-token'):
        token = credentials.Token.from_access_token(
            item.get('access-token'),
            refresh_token=item.get('refresh-token'),
        )

    return Target(
        name=str(item.get('name')),
        url=str(item['url']),
        space_guid=item.get('space-guid'),
        credentials=credentials.Credentials(
            username=item.get('username'),
            password=item.get('password'),
            client_id=item.get('client-id') or 'cf',
            client_secret=item.get('client-secret') or '',
            origin=item.get('origin'),
            token=token,
        ),
    )

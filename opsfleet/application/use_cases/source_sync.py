"""
Source Sync Helpers

Architectural Intent:
- Brings a remote working tree to the desired code revision
- Shared by the deployment pipeline and the remote image build
- Every helper re-applies its end state, so re-running is safe

Security:
- Branches, refs and repo URLs are quoted via shlex.quote()
- Deploy keys are namespaced per project under ~/.ssh/<project>/
- Access tokens travel over stdin into GIT_CONFIG_* env vars, never argv
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Optional

from opsfleet.domain.entities.app_config import GitSource, resolve_env_value
from opsfleet.domain.errors import ConfigError
from opsfleet.domain.ports.remote_session_port import RemoteSessionPort

logger = logging.getLogger(__name__)

RSYNC_EXCLUDES = ("target/", "node_modules/", ".git/", ".env", ".env.deploy")

_SSH_NO_HOSTKEY = "export GIT_SSH_COMMAND='ssh -o StrictHostKeyChecking=no' && "


async def setup_deploy_key(
    session: RemoteSessionPort, local_key_path: str, project: str
) -> str:
    """Uploads a git deploy key and registers it for github.com. Returns the remote path."""
    path = Path(os.path.expanduser(local_key_path))
    try:
        key_content = path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read deploy key: {path} ({e})") from None

    remote_dir = f"~/.ssh/{project}"
    remote_key = f"{remote_dir}/{path.name}"

    await session.run(
        f"mkdir -p {remote_dir} && cat > {remote_key} && chmod 600 {remote_key}",
        stdin=key_content,
    )
    await session.run(
        f"""grep -q '{remote_key}' ~/.ssh/config 2>/dev/null || cat >> ~/.ssh/config << 'SSHEOF'
Host github.com
  Hostname ssh.github.com
  Port 443
  User git
  IdentityFile {remote_key}
  IdentitiesOnly yes
  StrictHostKeyChecking no
SSHEOF
chmod 600 ~/.ssh/config"""
    )
    logger.debug("Deploy key installed at %s on %s", remote_key, session.target)
    return remote_key


def remote_url(git: GitSource) -> str:
    """HTTPS form of the repo when a token is configured, else the URL as declared."""
    if not git.token:
        return git.repo
    https = git.repo.replace("git@github.com:", "https://github.com/")
    return https.removesuffix(".git")


def token_auth(git: GitSource) -> tuple[str, Optional[str]]:
    """Shell prefix that reads the access token from stdin into git's environment.

    Returns the prefix and the stdin payload. The token never appears in the
    command line or in .git/config.
    """
    if not git.token:
        return _SSH_NO_HOSTKEY, None
    prefix = (
        "read -r OPS_GIT_TOKEN && export GIT_CONFIG_COUNT=1 "
        "GIT_CONFIG_KEY_0=http.extraHeader "
        "GIT_CONFIG_VALUE_0=\"Authorization: Basic $(printf 'x-access-token:%s' "
        "\"$OPS_GIT_TOKEN\" | base64 | tr -d '\\n')\" && "
    )
    return prefix, resolve_env_value(git.token) + "\n"


async def sync_git(
    session: RemoteSessionPort,
    git: GitSource,
    path: str,
    branch: str,
    project: str,
    git_ref: Optional[str] = None,
) -> str:
    """Initializes on first deploy, fetches and checks out afterwards. Returns the ref."""
    ref = shlex.quote(git_ref or branch)
    safe_path = shlex.quote(path)
    url = shlex.quote(remote_url(git))
    auth, token = token_auth(git)

    state = await session.run_output(
        f"test -d {safe_path}/.git && echo 'exists' || echo 'missing'"
    )

    if state.strip() == "exists":
        update = "git reset --hard" if git_ref else "git pull origin"
        await session.run(
            f"{auth}cd {safe_path} && git remote set-url origin {url} && "
            f"git fetch origin && git checkout {ref} && {update} {ref}",
            stdin=token,
            stream=True,
        )
        return git_ref or branch

    if git.ssh_key:
        await setup_deploy_key(session, git.ssh_key, project)

    # env files and synced dirs may already sit in the deploy path, so
    # initialize in place instead of cloning into a non-empty directory
    quoted_branch = shlex.quote(branch)
    command = (
        f"{auth}git init -q {safe_path} && cd {safe_path} && "
        f"(git remote set-url origin {url} 2>/dev/null || git remote add origin {url}) && "
        f"git fetch origin && "
        f"git checkout -f -B {quoted_branch} {shlex.quote('origin/' + branch)}"
    )
    if git_ref:
        command += f" && git reset --hard {ref}"
    await session.run(command, stdin=token, stream=True)
    return git_ref or branch


async def sync_push(session: RemoteSessionPort, path: str, local_root: str = "./") -> None:
    await session.push_dir(
        local_root, f"{path.rstrip('/')}/", excludes=RSYNC_EXCLUDES, delete=True
    )

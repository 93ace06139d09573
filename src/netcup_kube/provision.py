"""
원격 호스트 프로비저닝
root로 한 번 접속하여 sudo 사용자, authorized_keys, 저장소 클론을 준비한다
"""

import os
from typing import Optional
from jinja2 import Environment, StrictUndefined
from rich.console import Console

from .config import Target
from .errors import NetcupKubeError, PreconditionError, RemoteCommandError, ValidationError
from .logger import get_logger
from .process import ProcessLauncher
from .shell import require_hostname, require_script_safe, require_username
from .ssh import RemoteClient, SSHClient

console = Console()

ROOT_PASS_ENV = "ROOT_PASS"

PROVISION_TEMPLATE = """set -euo pipefail
export DEBIAN_FRONTEND=noninteractive
apt-get update -y
apt-get install -y --no-install-recommends sudo git curl ca-certificates

# Create user if missing
if ! id -u {{ user }} >/dev/null 2>&1; then
  adduser --disabled-password --gecos "" {{ user }}
fi
usermod -aG sudo {{ user }}
install -d -m 0700 -o {{ user }} -g {{ user }} /home/{{ user }}/.ssh

# Append key once (exact line match)
awk 'BEGIN{seen=0} $0=="{{ pubkey }}"{seen=1} END{exit !seen}' /home/{{ user }}/.ssh/authorized_keys 2>/dev/null || \\
  echo "{{ pubkey }}" >> /home/{{ user }}/.ssh/authorized_keys
chown {{ user }}:{{ user }} /home/{{ user }}/.ssh/authorized_keys
chmod 0600 /home/{{ user }}/.ssh/authorized_keys

# Passwordless sudo for the new user
cat >/etc/sudoers.d/90-{{ user }} <<EOF
{{ user }} ALL=(ALL) NOPASSWD:ALL
EOF
chmod 0440 /etc/sudoers.d/90-{{ user }}

# Clone or update the repository
if [[ ! -d /home/{{ user }}/netcup-kube ]]; then
  sudo -u {{ user }} git clone "{{ repo_url }}" /home/{{ user }}/netcup-kube
else
  # Only fetch here; pulling can fail if the repo is on a local branch
  cd /home/{{ user }}/netcup-kube && sudo -u {{ user }} git fetch --all -p
fi

cat <<EOM
[remote] Provisioning complete.
Now run on your local machine (recommended):
  netcup-kube remote run bootstrap

Or SSH into the server:
  ssh {{ user }}@{{ host }}
Then on the server:
  sudo /home/{{ user }}/netcup-kube/bin/netcup-kube bootstrap
EOM
"""

_jinja = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)


def read_public_key(path: str) -> str:
    """공개키 파일 읽기 및 검증 (비어있지 않은 한 줄)"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read().strip()
    except OSError as e:
        raise PreconditionError(f"failed to read public key {path}: {e}") from e

    if not content:
        raise ValidationError(f"public key file is empty: {path}")
    if len(content.splitlines()) > 1:
        raise ValidationError(f"public key file contains multiple lines: {path} (expected exactly one key)")
    return content


def render_provision_script(user: str, pubkey: str, repo_url: str, host: str) -> str:
    """프로비저닝 스크립트 생성 (모든 치환값은 먼저 검증)

    user/host는 스크립트 안에서 따옴표 없이 셸 단어로 쓰이므로
    계정 이름/호스트 이름 형식까지 검사한다.
    """
    values = {
        "user": require_username(require_script_safe("user", user)),
        "pubkey": require_script_safe("public key", pubkey),
        "repo_url": require_script_safe("repository URL", repo_url),
        "host": require_hostname(require_script_safe("host", host)),
    }
    return _jinja.from_string(PROVISION_TEMPLATE).render(**values)


def ensure_root_access(client: RemoteClient, host: str, pubkey_path: str,
                       launcher: ProcessLauncher) -> None:
    """root 키 접속 확인, 실패 시 sshpass + ssh-copy-id로 키 설치"""
    logger = get_logger()
    try:
        client.test_connection()
        console.print(f"[green]✓ root@{host} SSH 키 접속 확인[/green]")
        return
    except RemoteCommandError:
        logger.info(f"Key-based SSH to root@{host} not available yet")

    manual = (
        "Install sshpass to allow password authentication, or run:\n"
        f"  ssh-copy-id -o StrictHostKeyChecking=no -i {pubkey_path} root@{host}\n"
        "Then re-run: netcup-kube remote provision"
    )
    if launcher.which("sshpass") is None:
        raise PreconditionError("passwordless SSH for root not set up yet.", manual)

    root_pass = os.environ.get(ROOT_PASS_ENV, "")
    if not root_pass:
        raise PreconditionError(
            f"{ROOT_PASS_ENV} environment variable not set.",
            f"Export {ROOT_PASS_ENV}=<root password> for root@{host} and retry, or:\n{manual}",
        )

    console.print("[cyan]sshpass + ssh-copy-id로 root 계정에 SSH 키를 등록합니다...[/cyan]")
    argv = [
        "sshpass", "-e", "ssh-copy-id",
        "-o", "StrictHostKeyChecking=no",
        "-f", "-i", pubkey_path,
        f"root@{host}",
    ]
    try:
        # 비밀번호는 명령 인자가 아닌 SSHPASS 환경변수로만 전달
        result = launcher.run(argv, env={"SSHPASS": root_pass})
    finally:
        root_pass = ""
        os.environ.pop(ROOT_PASS_ENV, None)

    if result.returncode != 0:
        raise NetcupKubeError(f"failed to copy SSH key to root@{host}: "
                              f"ssh-copy-id exited with status {result.returncode}")


def provision(target: Target,
              client: Optional[RemoteClient] = None,
              launcher: Optional[ProcessLauncher] = None) -> None:
    """대상 호스트 프로비저닝 (sudo 사용자 + 저장소 클론/갱신)"""
    launcher = launcher or ProcessLauncher()
    logger = get_logger()

    # 키 검증은 네트워크 호출 전에 끝낸다
    pubkey_path = target.get_pubkey()
    pubkey = read_public_key(pubkey_path)
    script = render_provision_script(target.user, pubkey, target.repo_url, target.host)

    root_client = client or SSHClient(target.host, "root", launcher=launcher)

    console.print(f"[cyan]root@{target.host} SSH 접속 확인 중...[/cyan]")
    ensure_root_access(root_client, target.host, pubkey_path, launcher)

    console.print(f"[cyan]{target.address} 프로비저닝 중...[/cyan]")
    logger.info(f"Provisioning {target.address}")
    try:
        root_client.execute_script(script)
    except RemoteCommandError as e:
        raise NetcupKubeError(f"provisioning failed on {target.host}: {e}") from e

    console.print(f"[green]✓ {target.address} 프로비저닝 완료[/green]")
    logger.info(f"Provisioning of {target.address} completed")

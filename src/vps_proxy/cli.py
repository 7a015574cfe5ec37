"""
CLI 메인 인터페이스
Click 및 Rich 기반 사용자 친화적 CLI
"""

import sys
import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Config
from .errors import ProvisionError, ServiceError
from .frp import FrpVariant
from .logger import init_logger, get_logger
from .provisioner import Provisioner
from .wireguard import WireGuardVariant

console = Console()

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _load_config(config_path, debug: bool, no_firewall: bool) -> Config:
    """설정 로드 및 로거 초기화"""
    try:
        cfg = Config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]✗ 설정 파일 오류: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    if no_firewall:
        cfg.firewall.enabled = False

    init_logger(cfg.agent.log_dir, cfg.agent.log_level, debug)
    return cfg


def _execute(provisioner: Provisioner):
    """프로비저너 실행 및 종료 코드 결정"""
    logger = get_logger()
    try:
        result = provisioner.run()
    except KeyboardInterrupt:
        console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
        logger.warning("Execution interrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except ProvisionError as e:
        console.print(f"\n[red]✗ ({e.step}) {escape(str(e))}[/red]")
        logger.error(f"Provisioning failed at {provisioner.stage.name} ({e.step}): {e}")
        if isinstance(e, ServiceError) and e.log_tail:
            console.print("\n[bold]최근 서비스 로그:[/bold]")
            console.print(e.log_tail, markup=False)
        log_files = logger.get_log_files()
        console.print(f"\n[bold]로그 파일:[/bold] {log_files['main_log']}")
        sys.exit(EXIT_FAILURE)

    if result.completed:
        console.print("\n[bold green]✓ 설치가 완료되었습니다![/bold green]")
    sys.exit(0)


@click.group()
@click.version_option(version=__version__)
def cli():
    """K8s VPS Proxy

    VPS를 Kubernetes 클러스터의 외부 진입점(frp 또는 WireGuard + Caddy)으로 구성합니다.
    """
    pass


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--domain', envvar='DOMAIN', help='서브도메인 호스트 (환경변수 DOMAIN)')
@click.option('--token', envvar='TOKEN', help='frp 인증 토큰 (환경변수 TOKEN)')
@click.option('--vps-ip', envvar='VPS_IP', help='VPS 공인 IP (생략 시 자동 감지, 환경변수 VPS_IP)')
@click.option('--interactive', '-i', is_flag=True, help='누락된 값을 대화형으로 입력')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='모든 확인 질문에 yes')
@click.option('--free-ports', is_flag=True, help='80/443 포트를 점유한 프로세스를 종료')
@click.option('--no-firewall', is_flag=True, help='방화벽 설정 건너뛰기')
@click.option('--debug', is_flag=True, help='디버그 모드')
def frp(config_path, domain, token, vps_ip, interactive, assume_yes, free_ports, no_firewall, debug):
    """frps + systemd 로 VPS 구성

    \b
    예: TOKEN=yourtoken DOMAIN=example.com k8s-vps-proxy frp
    """
    cfg = _load_config(config_path, debug, no_firewall)
    get_logger().info(f"Starting frp command (interactive={interactive}, free_ports={free_ports})")

    provisioner = Provisioner(
        FrpVariant(cfg),
        environ={"DOMAIN": domain, "TOKEN": token, "VPS_IP": vps_ip},
        interactive=interactive,
        assume_yes=assume_yes,
        free_ports=free_ports,
    )
    _execute(provisioner)


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--domain', envvar='DOMAIN', help='도메인 (환경변수 DOMAIN)')
@click.option('--vps-ip', envvar='VPS_IP', help='VPS 공인 IP (생략 시 자동 감지, 환경변수 VPS_IP)')
@click.option('--interactive/--non-interactive', default=True, help='대화형 모드 (기본값: 대화형)')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='모든 확인 질문에 yes')
@click.option('--regenerate-keys', is_flag=True, help='기존 WireGuard 키를 폐기하고 새로 생성')
@click.option('--free-ports', is_flag=True, help='80/443 포트를 점유한 프로세스를 종료')
@click.option('--no-firewall', is_flag=True, help='방화벽 설정 건너뛰기')
@click.option('--debug', is_flag=True, help='디버그 모드')
def wireguard(config_path, domain, vps_ip, interactive, assume_yes, regenerate_keys,
              free_ports, no_firewall, debug):
    """WireGuard + Caddy (Docker Compose) 로 VPS 구성"""
    cfg = _load_config(config_path, debug, no_firewall)
    get_logger().info(f"Starting wireguard command (interactive={interactive}, regenerate_keys={regenerate_keys})")

    provisioner = Provisioner(
        WireGuardVariant(cfg),
        environ={"DOMAIN": domain, "VPS_IP": vps_ip},
        interactive=interactive,
        assume_yes=assume_yes,
        regenerate_keys=regenerate_keys,
        free_ports=free_ports,
    )
    _execute(provisioner)


@cli.command()
@click.argument('output', type=click.Path(), default='./config.yaml')
def init(output):
    """샘플 설정 파일 생성"""
    cfg = Config()
    cfg.create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print("[cyan]설정 파일을 편집한 후 다음 명령어로 실행하세요:[/cyan]")
    console.print(f"[cyan]  DOMAIN=example.com TOKEN=yourtoken k8s-vps-proxy frp --config {output}[/cyan]")
    console.print(f"[cyan]  k8s-vps-proxy wireguard --config {output}[/cyan]")


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
def validate(config_path):
    """설정 파일 유효성 검사"""
    try:
        cfg = Config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]✗ 설정 파일 오류: {str(e)}[/red]")
        sys.exit(EXIT_FAILURE)

    console.print("[green]✓ 설정 파일이 유효합니다.[/green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")

    table.add_row("설정 파일", cfg.config_path or "[yellow]기본값[/yellow]")
    table.add_row("frp 버전", cfg.frp.version)
    table.add_row("frp 설치 경로", cfg.frp.install_dir)
    table.add_row("frp HTTPS 프록시", "예" if cfg.frp.vhost_https_port else "아니오")
    table.add_row("WireGuard 설치 경로", cfg.wireguard.install_dir)
    table.add_row("WireGuard 터널", f"{cfg.wireguard.server_ip} ↔ {cfg.wireguard.client_ip} (udp/{cfg.wireguard.port})")
    table.add_row("K8s 피어 공개키", cfg.wireguard.peer_public_key or "[yellow]미설정[/yellow]")
    table.add_row("방화벽 활성화", "예" if cfg.firewall.enabled else "아니오")

    console.print(table)


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()

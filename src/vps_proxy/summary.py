"""
결과 요약 모듈
콘솔 요약 출력 및 나중에 다시 볼 수 있는 연결 정보 파일 생성
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .render import Summary, render_template
from .service import ServiceOutcome
from .state import ProvisioningState, atomic_write
from .logger import get_logger

console = Console()

REPORT_FILE = "connection-info.txt"

REPORT_TEMPLATE = """# k8s-vps-proxy connection info
# generated: {{ generated_at }}
variant: {{ variant }}
{% for key, value in items %}
{{ key }}: {{ value }}
{% endfor %}
{% if service_outcome %}
service: {{ service_outcome }}
{% endif %}
{% for step in next_steps %}
next_step: {{ step }}
{% endfor %}
"""


def write_report(state: ProvisioningState, summary: Summary,
                 service_outcome: Optional[ServiceOutcome] = None,
                 now: Optional[datetime] = None) -> Path:
    """key: value 한 줄씩 기록된 연결 정보 파일 (비밀값 포함, 0600)"""
    content = render_template(
        REPORT_TEMPLATE,
        generated_at=(now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        variant=state.variant,
        items=summary.items,
        service_outcome=service_outcome.value if service_outcome else "",
        next_steps=summary.next_steps,
    )
    path = state.path(REPORT_FILE)
    atomic_write(path, content, mode=0o600)
    return path


def emit_summary(state: ProvisioningState, summary: Summary,
                 service_outcome: Optional[ServiceOutcome] = None) -> Path:
    """요약 출력 및 리포트 파일 저장"""
    logger = get_logger()

    console.print("\n" + "=" * 60)
    console.print(f"[bold green]✓ VPS 설정 완료! ({summary.title})[/bold green]")
    console.print("=" * 60 + "\n")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")
    for key, value in summary.items:
        table.add_row(key, Text(value))
    if service_outcome:
        table.add_row("service", service_outcome.value)
    console.print(table)

    if summary.next_steps:
        console.print("\n[bold yellow]다음 단계:[/bold yellow]")
        for index, step in enumerate(summary.next_steps, 1):
            console.print(f"  {index}. {step}", markup=False)

    if summary.peer_config:
        console.print(Panel(
            Text(summary.peer_config.content.rstrip()),
            title=str(summary.peer_config.path),
            border_style="green"
        ))

    if summary.commands:
        console.print("[bold green]유용한 명령어:[/bold green]")
        for command, description in summary.commands:
            console.print(f"  {command:<50} # {description}")

    report = write_report(state, summary, service_outcome)
    console.print(f"\n[cyan]연결 정보 저장: {report}[/cyan]")
    logger.info(f"Summary written to {report}")
    return report

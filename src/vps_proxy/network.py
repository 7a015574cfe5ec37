"""
네트워크 유틸리티 모듈
공인 IP 감지, 포트 점유 확인, (명시적 옵션일 때만) 포트 점유 프로세스 종료
"""

import ipaddress
import os
import signal
import subprocess
from typing import List, Optional, Sequence

import netifaces
import requests
from rich.console import Console

from .logger import get_logger

console = Console()


def is_valid_ip(value: str) -> bool:
    """IPv4/IPv6 리터럴 여부"""
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def format_endpoint(ip: str, port: int) -> str:
    """host:port (IPv6는 대괄호 표기)"""
    if ipaddress.ip_address(ip).version == 6:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


class NetworkChecker:
    """네트워크 상태 확인 클래스"""

    def __init__(self, http_timeout: int = 10, command_timeout: int = 30):
        self.http_timeout = http_timeout
        self.command_timeout = command_timeout
        self.logger = get_logger()

    def query_ip_provider(self, url: str) -> Optional[str]:
        """공인 IP 조회 서비스 한 곳에 질의"""
        try:
            response = requests.get(url, timeout=self.http_timeout)
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"IP provider {url} failed: {e}")
            return None

        if response.status_code >= 400:
            self.logger.warning(f"IP provider {url} returned HTTP {response.status_code}")
            return None

        candidate = response.text.strip()
        if not is_valid_ip(candidate):
            self.logger.warning(f"IP provider {url} returned an invalid address: {candidate[:40]!r}")
            return None
        return candidate

    def get_interface_public_ip(self) -> Optional[str]:
        """로컬 인터페이스 중 전역(global) 주소를 가진 첫 IPv4 주소"""
        for interface in netifaces.interfaces():
            addrs = netifaces.ifaddresses(interface)
            for addr_info in addrs.get(netifaces.AF_INET, []):
                address = addr_info.get("addr")
                if not address:
                    continue
                try:
                    ip = ipaddress.ip_address(address)
                except ValueError:
                    continue
                if ip.is_global:
                    self.logger.debug(f"Interface {interface} has global address {address}")
                    return address
        return None

    def detect_public_ip(self, providers: Sequence[str]) -> Optional[str]:
        """공인 IP 감지

        외부 서비스를 순서대로 시도하고, 모두 실패하면 로컬 인터페이스의
        전역 주소를 사용한다.
        """
        console.print("[cyan]VPS 공인 IP 감지 중...[/cyan]")
        self.logger.info("Detecting VPS public IP...")

        for url in providers:
            ip = self.query_ip_provider(url)
            if ip:
                self.logger.info(f"Public IP {ip} (via {url})")
                return ip

        ip = self.get_interface_public_ip()
        if ip:
            self.logger.info(f"Public IP {ip} (via local interface)")
        else:
            self.logger.error("Could not detect public IP")
        return ip

    def find_port_holders(self, port: int) -> List[int]:
        """TCP 포트에서 LISTEN 중인 프로세스 PID 목록 (lsof 사용)"""
        try:
            result = subprocess.run(
                ["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"],
                capture_output=True,
                text=True,
                timeout=self.command_timeout
            )
        except FileNotFoundError:
            self.logger.warning("lsof not found, cannot inspect port holders")
            return []
        except subprocess.TimeoutExpired:
            self.logger.warning(f"lsof timed out while inspecting port {port}")
            return []

        pids = []
        for line in result.stdout.split():
            if line.isdigit():
                pids.append(int(line))
        return sorted(set(pids))

    def free_port(self, port: int) -> List[int]:
        """포트를 점유한 프로세스 종료 (SIGTERM)"""
        pids = self.find_port_holders(port)
        for pid in pids:
            console.print(f"[yellow]포트 {port} 점유 프로세스 종료: PID {pid}[/yellow]")
            self.logger.warning(f"Terminating PID {pid} holding port {port}")
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                self.logger.debug(f"PID {pid} already exited")
        return pids

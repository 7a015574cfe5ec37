"""
K8s VPS Proxy
VPS를 Kubernetes 클러스터의 외부 진입점으로 구성하는 프로비저너

Features:
- frp(frps + systemd) 또는 WireGuard + Caddy(Docker Compose) 구성
- 필요한 바이너리/이미지 자동 설치
- idempotent 재실행 (기존 키/설정 재사용, 백업)
- 원격 피어(K8s 측) 설정 자동 생성
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"

"""
netcup-kube
SSH로 원격 클러스터 노드를 준비하고 관리하는 운영자 CLI

Features:
- 원격 호스트 프로비저닝 (sudo 사용자, authorized_keys, 저장소 클론)
- 원격 git 동기화 및 크로스 빌드 바이너리 업로드
- 원격 명령 실행 및 DRY_RUN 스모크 테스트
- SSH 터널 / kubectl port-forward 백그라운드 관리 (idempotent)
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"

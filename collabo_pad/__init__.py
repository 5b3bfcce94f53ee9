"""
collabo-pad 실시간 코어

Redis Stream 이벤트 로그, PostgreSQL 변경 알림, 회복 탄력성 계층
"""

__version__ = "0.1.0"

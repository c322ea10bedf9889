from pathlib import Path


# 项目根目录（包含 api、database、pricing 的目录）
BASE_DIR = Path(__file__).resolve().parents[1]

CONFIG_DIR = BASE_DIR / 'config'
LOG_DIR = BASE_DIR / 'log'

#!/usr/bin/env python3
"""Cross-platform install script for apex-claw.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 4. Install project
    target = ".[dev]" if dev else "."
    print(f"Installing apex-claw ({'development' if dev else 'production'})...")
    args = [pip, "install", "-e", target] if dev else [pip, "install", target]
    subprocess.check_call(args, cwd=project_dir)

    # 5. Create workspace directory for downloads and tool output
    os.makedirs(os.path.join(project_dir, "workspace", "downloads"), exist_ok=True)

    # 6. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  apex-claw installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit .env - set at least:")
    print("       TELEGRAM_BOT_TOKEN=...")
    print("       OWNER_ID=<your telegram user id>")
    print("       ZAI_TOKEN=...   (optional, a guest token is used otherwise)")
    print("  2. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  3. Check config:")
    print("       python -m apex_claw config-check")
    print("  4. Start the bot:")
    print("       python -m apex_claw")
    print()


if __name__ == "__main__":
    main()

"""Launch independent MySQL containers that act as unsynchronised replicas for replicarouter."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from replicarouter.config import CONFIG_FILE, AppConfig, DatabaseProfileConfig, load_config, save_config

DEFAULT_CONTAINER_PREFIX = "replicarouter-replica"
DEFAULT_BASE_PORT = 3407
DEFAULT_REPLICAS = 2
DEFAULT_PASSWORD = "replicarouter"
DEFAULT_CHANNEL = "demo"
DOCKER_IMAGE = "mysql:8.0"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"MYSQL_ROOT_PASSWORD={password}",
                "-p",
                f"{port}:3306",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, password)


def wait_for_start(name: str, password: str, retries: int = 30, delay: float = 2.0) -> None:
    for _ in range(retries):
        result = subprocess.run(
            ["docker", "exec", name, "mysqladmin", "ping", "-uroot", f"-p{password}", "--silent"],
            text=True,
            capture_output=True,
        )
        if result.returncode == 0:
            return
        time.sleep(delay)
    print(f"Warning: '{name}' did not report ready state; continuing anyway.")


def seed_data(name: str, password: str, channel: str, *, with_sample_rows: bool) -> None:
    database = f"air_{channel}"
    sql = f"""
    CREATE DATABASE IF NOT EXISTS `{database}`;
    USE `{database}`;
    CREATE TABLE IF NOT EXISTS agency (
        Code INT AUTO_INCREMENT PRIMARY KEY,
        AgencyName VARCHAR(255) NOT NULL,
        Address VARCHAR(255) NULL,
        PIN VARCHAR(16) NULL,
        Phone VARCHAR(32) NULL,
        Email VARCHAR(255) NULL
    );
    CREATE TABLE IF NOT EXISTS commercials (
        Id INT AUTO_INCREMENT PRIMARY KEY,
        Code INT NOT NULL,
        Agency VARCHAR(255) NULL,
        Spot VARCHAR(255) NOT NULL,
        Title VARCHAR(255) NULL,
        Duration VARCHAR(16) NULL,
        Otherinfo VARCHAR(255) NULL,
        Filename VARCHAR(255) NOT NULL,
        User VARCHAR(64) NULL,
        LastUpdate DATETIME NULL
    );
    """
    if with_sample_rows:
        # Only the first replica gets rows so the self-healing writer has something to reconcile.
        sql += """
    INSERT INTO agency (AgencyName, Phone) VALUES ('Sunrise Media', '555-0100'), ('Northwind Ads', NULL);
    INSERT INTO commercials (Code, Agency, Spot, Title, Duration, Filename, User, LastUpdate)
    VALUES (1, 'Sunrise Media', 'SUNRISE BREAKFAST', 'Breakfast jingle', '00:00:30', 'SUNRISE BREAKFAST.WAV', 'demo', NOW());
    """
    run(["docker", "exec", "-i", name, "mysql", "-uroot", f"-p{password}"], input=sql.strip())


def update_config(ports: list[int], password: str) -> None:
    try:
        config = load_config()
    except Exception:
        config = AppConfig()
    existing = {profile.name for profile in config.profiles}
    has_default = any(profile.is_default for profile in config.profiles)
    added = 0
    for index, port in enumerate(ports, start=1):
        name = f"Docker Replica {index}"
        if name in existing:
            print(f"Profile '{name}' already present in config; leaving as-is.")
            continue
        config = config.with_profile(
            DatabaseProfileConfig(
                name=name,
                host="127.0.0.1",
                port=port,
                user="root",
                password=password,
                timeout_seconds=5,
                is_default=not has_default and index == 1,
                order=100 + index,
            )
        )
        added += 1
    if added:
        save_config(config)
        print(f"Added {added} replica profile(s) to {CONFIG_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--prefix", default=DEFAULT_CONTAINER_PREFIX, help="Docker container name prefix")
    parser.add_argument("--replicas", type=int, default=DEFAULT_REPLICAS, help="Number of MySQL servers to start")
    parser.add_argument("--base-port", type=int, default=DEFAULT_BASE_PORT, help="Host port of the first server")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="MySQL root password")
    parser.add_argument("--channel", default=DEFAULT_CHANNEL, help="Channel whose air_<channel> database is seeded")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    ports = [args.base_port + offset for offset in range(max(args.replicas, 1))]
    try:
        for index, port in enumerate(ports, start=1):
            name = f"{args.prefix}-{index}"
            start_container(name, port, args.password)
            seed_data(name, args.password, args.channel, with_sample_rows=index == 1)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    update_config(ports, args.password)
    print(
        f"{len(ports)} MySQL replica(s) are ready on ports {', '.join(str(port) for port in ports)}. "
        "Run `python -m replicarouter check` to check them."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

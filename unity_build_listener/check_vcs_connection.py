# check_vcs_connection.py
"""Diagnostic: can this machine see the Unity project's repository?

Checks the local checkout with the git CLI and, when ``GITHUB_TOKEN`` is
set, the GitHub repository named by ``GITHUB_REPO`` (``owner/name``) with
PyGithub. Exits 0 when every check that ran passed.

    python -m unity_build_listener.check_vcs_connection --branch main
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from github import Auth, Github

from .command_runner import CommandRunner, run_command
from .log import get_logger, setup_logging

logger = get_logger(__name__)

CHECK_TIMEOUT_SECONDS = 60


def check_local_checkout(repo_path: Path, branch: str, runner: CommandRunner = run_command) -> Tuple[bool, Optional[str]]:
    """Verifies the working tree and the ``origin`` remote.

    Returns:
        (ok, remote_head): ``remote_head`` is the SHA ``origin`` reports for
        ``branch``, or None if it could not be read.
    """
    def git(*args):
        return runner(["git", *args], cwd=repo_path, timeout=CHECK_TIMEOUT_SECONDS)

    ok = True
    head = git("rev-parse", "HEAD")
    if head.ok:
        logger.info(f"[VC Check] Local HEAD: {head.stdout.strip()}")
    else:
        logger.error(f"[VC Check] Not a usable git checkout at {repo_path}: {head.describe()}\n{head.output}")
        return False, None

    current = git("rev-parse", "--abbrev-ref", "HEAD")
    if current.ok:
        logger.info(f"[VC Check] Current branch: {current.stdout.strip()}")

    remote = git("ls-remote", "--heads", "origin", branch)
    remote_head = None
    if not remote.ok:
        logger.error(f"[VC Check] Cannot reach origin: {remote.describe()}\n{remote.output}")
        ok = False
    else:
        line = remote.stdout.strip().splitlines()[0] if remote.stdout.strip() else ""
        if line:
            remote_head = line.split()[0]
            logger.info(f"[VC Check] origin/{branch} is at {remote_head}")
        else:
            logger.error(f"[VC Check] origin has no branch named '{branch}'")
            ok = False
    return ok, remote_head


def check_github_repo(token: str, repo_full_name: str, branch: str) -> Tuple[bool, Optional[str]]:
    """Connects to GitHub and reads the head commit of ``branch``."""
    try:
        g = Github(auth=Auth.Token(token))
        repo = g.get_repo(repo_full_name)
        logger.info(f"[VC Check] Connected to GitHub repo: {repo.full_name}")
        sha = repo.get_branch(branch).commit.sha
        logger.info(f"[VC Check] GitHub reports {branch} at {sha}")
        return True, sha
    except Exception as e:
        logger.error(f"[VC Check] Error connecting to GitHub repo {repo_full_name}: {e}")
        return False, None


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Check source-control connectivity for the build VM.")
    parser.add_argument("--repo-path", default=os.getenv("UNITY_PROJECT_PATH", "."))
    parser.add_argument("--branch", default=os.getenv("DEFAULT_BRANCH", "main"))
    parser.add_argument("--github-repo", default=os.getenv("GITHUB_REPO"))
    args = parser.parse_args(argv)

    setup_logging()
    local_ok, remote_head = check_local_checkout(Path(args.repo_path), args.branch)
    all_ok = local_ok

    token = os.getenv("GITHUB_TOKEN")
    if token and args.github_repo:
        github_ok, github_head = check_github_repo(token, args.github_repo, args.branch)
        all_ok = all_ok and github_ok
        if github_ok and remote_head and github_head != remote_head:
            logger.warning(f"[VC Check] origin ({remote_head}) and GitHub ({github_head}) disagree on {args.branch}")
    else:
        logger.info("[VC Check] GITHUB_TOKEN or GITHUB_REPO not set, skipping the GitHub API check.")

    logger.info(f"[VC Check] {'PASS' if all_ok else 'FAIL'}")
    return 0 if all_ok else 1


if __name__ == "__main__":
    sys.exit(main())

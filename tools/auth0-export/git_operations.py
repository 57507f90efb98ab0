"""
git_operations: Branch, commit, push and pull request helpers for the Terraform export.

Commands are run through git and the GitHub CLI (gh). Failures are raised as
GitOperationError carrying the step that failed and, where known, a recovery
action for the user.
"""

import logging
import os
import re
import subprocess
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

GIT_ERROR = "GIT_ERROR"
GH_CLI_ERROR = "GH_CLI_ERROR"
FILESYSTEM_ERROR = "FILESYSTEM_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"


class GitOperationError(Exception):
    """A git, gh or filesystem step of the PR workflow failed."""

    def __init__(self, code: str, message: str, step: str = "",
                 details: str = "", recovery_action: str = ""):
        self.code = code
        self.message = message
        self.step = step
        self.details = details
        self.recovery_action = recovery_action
        text = f"{step} failed: {message}" if step else message
        if recovery_action:
            text += f" ({recovery_action})"
        super().__init__(text)


class CreatePRResult(NamedTuple):
    pr_url: str
    branch_name: str
    files_changed: List[str]


def run_command(args: List[str], cwd: Optional[str] = None) -> str:
    """Run a command and return its stdout; raises CalledProcessError on failure."""
    logger.debug(f"Executing: {' '.join(args)} in {cwd}")
    result = subprocess.run(args, cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout


def _command_error(e: subprocess.CalledProcessError) -> str:
    return (e.stderr or e.stdout or str(e)).strip()


# --- Validation ---

def validate_git_repo(repo_path: str) -> None:
    """Raise GitOperationError unless repo_path is a writable git work tree."""
    if not os.path.exists(repo_path):
        raise GitOperationError(VALIDATION_ERROR, f"Directory does not exist: {repo_path}",
                                step="validate repository")
    if not os.path.isdir(repo_path):
        raise GitOperationError(VALIDATION_ERROR, f"Path is not a directory: {repo_path}",
                                step="validate repository")
    try:
        run_command(["git", "rev-parse", "--git-dir"], repo_path)
    except subprocess.CalledProcessError as e:
        raise GitOperationError(GIT_ERROR, f"Not a git repository: {repo_path}",
                                step="validate repository", details=_command_error(e),
                                recovery_action="Run `git init` to initialize a repository") from e
    if not os.access(repo_path, os.W_OK):
        raise GitOperationError(FILESYSTEM_ERROR, f"Repository is not writable: {repo_path}",
                                step="validate repository")


def check_gh_cli() -> None:
    """Raise GitOperationError unless gh is installed and authenticated."""
    try:
        run_command(["gh", "auth", "status"])
    except FileNotFoundError as e:
        raise GitOperationError(GH_CLI_ERROR, "GitHub CLI (gh) is not installed",
                                step="check gh",
                                recovery_action="Install gh: https://cli.github.com/") from e
    except subprocess.CalledProcessError as e:
        output = _command_error(e)
        if "not logged in" in output.lower():
            raise GitOperationError(GH_CLI_ERROR, "GitHub CLI is not authenticated",
                                    step="check gh", details=output,
                                    recovery_action="Run `gh auth login` to authenticate") from e
        raise GitOperationError(GH_CLI_ERROR, f"GitHub CLI check failed: {output}",
                                step="check gh", details=output) from e


# --- Branches ---

def get_current_branch(repo_path: str) -> str:
    return run_command(["git", "branch", "--show-current"], repo_path).strip()


def get_default_branch(repo_path: str) -> str:
    """origin/HEAD if set, else main when origin/main exists, else master."""
    try:
        ref = run_command(["git", "symbolic-ref", "refs/remotes/origin/HEAD", "--short"], repo_path)
        return ref.strip().replace("origin/", "", 1)
    except subprocess.CalledProcessError:
        pass
    try:
        run_command(["git", "rev-parse", "--verify", "origin/main"], repo_path)
        return "main"
    except subprocess.CalledProcessError:
        return "master"


def generate_branch_name(resource_type: str, resource_name: str,
                         now: Optional[datetime] = None) -> str:
    sanitized = re.sub(r'[^a-z0-9]+', '-', resource_name.lower()).strip('-')[:30]
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    return f"auth0/export-{resource_type}-{sanitized}-{timestamp}"


def create_branch(repo_path: str, branch_name: str, base_branch: Optional[str] = None) -> None:
    base = base_branch or get_default_branch(repo_path)
    run_command(["git", "fetch", "origin"], repo_path)
    run_command(["git", "checkout", "-b", branch_name, f"origin/{base}"], repo_path)
    logger.info(f"Created branch: {branch_name} from origin/{base}")


def checkout_branch(repo_path: str, branch_name: str) -> None:
    run_command(["git", "checkout", branch_name], repo_path)


# --- Changes ---

def append_to_file(repo_path: str, file_path: str, content: str) -> str:
    """Append content to repo_path/file_path, creating the file and its directories."""
    full_path = os.path.join(repo_path, file_path)
    os.makedirs(os.path.dirname(full_path) or ".", exist_ok=True)

    existing = ""
    if os.path.exists(full_path):
        with open(full_path, encoding="utf-8") as f:
            existing = f.read()

    new_content = f"{existing}\n{content}\n" if existing else f"{content}\n"
    with open(full_path, "w", encoding="utf-8") as f:
        f.write(new_content)
    logger.info(f"Updated file: {full_path}")
    return file_path


def commit_changes(repo_path: str, message: str, files: Optional[List[str]] = None) -> None:
    for file in files or []:
        run_command(["git", "add", "--", file], repo_path)
    run_command(["git", "commit", "-m", message], repo_path)
    logger.info(f"Created commit: {message[:50]}")


def push_branch(repo_path: str, branch_name: str) -> None:
    run_command(["git", "push", "-u", "origin", branch_name], repo_path)
    logger.info(f"Pushed branch: {branch_name}")


def create_pull_request(repo_path: str, title: str, body: str,
                        base_branch: Optional[str] = None) -> str:
    """Open a PR for the current branch with gh and return its URL."""
    base = base_branch or get_default_branch(repo_path)
    pr_url = run_command(["gh", "pr", "create", "--title", title, "--body", body,
                          "--base", base], repo_path).strip()
    logger.info(f"Created PR: {pr_url}")
    return pr_url


# --- Workflow ---

def create_pr_with_changes(repo_path: str, branch_name: str, file_path: str, content: str,
                           commit_message: str, pr_title: str, pr_body: str,
                           base_branch: Optional[str] = None) -> CreatePRResult:
    """Branch, append content, commit, push and open a PR, then return to the original branch.

    On failure the original branch is checked out again (best effort) and the
    error is re-raised. A branch or commit that was already pushed is left as is.
    """
    original_branch = get_current_branch(repo_path)

    pr_url = ""
    step = "create branch"
    try:
        create_branch(repo_path, branch_name, base_branch)
        step = "append file"
        append_to_file(repo_path, file_path, content)
        step = "commit"
        commit_changes(repo_path, commit_message, [file_path])
        step = "push"
        push_branch(repo_path, branch_name)
        step = "create pull request"
        pr_url = create_pull_request(repo_path, pr_title, pr_body, base_branch)
        step = "checkout original branch"
        checkout_branch(repo_path, original_branch)
    except Exception as e:
        logger.warning(f"PR workflow failed at step '{step}': {e}")
        if step != "checkout original branch":
            try:
                checkout_branch(repo_path, original_branch)
            except Exception as cleanup_error:
                logger.warning(f"Could not return to branch {original_branch}: {cleanup_error}")
        if isinstance(e, GitOperationError):
            raise
        if isinstance(e, subprocess.CalledProcessError):
            raise GitOperationError(GIT_ERROR, _command_error(e), step=step,
                                    details=f"pull request: {pr_url}" if pr_url else "") from e
        if isinstance(e, OSError):
            raise GitOperationError(FILESYSTEM_ERROR, str(e), step=step) from e
        raise

    return CreatePRResult(pr_url=pr_url, branch_name=branch_name, files_changed=[file_path])

"""Adapters: git, worktrees, agent registry and runner, chat client, run storage, notifications."""

"""Keyword-based command categorization."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# Evaluated top to bottom, first match wins. Narrow tools sit above the broad
# "linux" bucket, which would otherwise claim ssh, rsync, make and friends.
CATEGORY_RULES: list[tuple[str, str]] = [
    ("git", r"\bgit\b"),
    ("npm", r"\b(npm|yarn|pnpm)\b"),
    ("docker", r"\bdocker\b"),
    ("kubernetes", r"\b(kubectl|helm)\b"),
    ("cloud", r"\b(aws|terraform|azure|gcloud)\b"),
    ("database", r"\b(psql|mysql|mongo|sqlite3|redis-cli)\b"),
    ("build", r"\b(webpack|parcel|vite|gulp|grunt|make|cmake)\b"),
    ("testing", r"\b(jest|mocha|cypress|vitest|playwright|pytest)\b"),
    ("python", r"\b(python|pip|poetry|conda)\b"),
    ("rust", r"\b(cargo|rust)\b"),
    ("go", r"\bgo\b"),
    ("vscode-extension", r"\b(vsce|ovsx)\b"),
    ("flutter", r"\b(flutter|dart)\b"),
    ("gradle-maven", r"\b(gradlew|gradle|mvn|maven)\b"),
    ("ssh-remote", r"\b(ssh|scp|rsync|ssh-keygen|ssh-copy-id)\b"),
    (
        "linux",
        r"\b(cd|ls|pwd|mkdir|rmdir|touch|cp|mv|rm|ln|chmod|chown|chgrp|find|grep|sed|awk|sort|uniq|wc|cat"
        r"|more|less|head|tail|nano|vim|vi|emacs|ssh|scp|rsync|tar|gzip|bzip2|xz|zip|mount|umount|df|du|ps"
        r"|kill|top|htop|netstat|ss|ping|curl|wget|hostname|uname|free|uptime|whoami|id|groups|useradd"
        r"|usermod|userdel|groupadd|sudo|su|apt|yum|brew|pacman)\b",
    ),
    ("system", r"\b(systemctl|journalctl|crontab|iptables|ufw)\b"),
    ("deployment", r"\b(ansible|puppet|chef|deploy|rsync)\b"),
    ("network", r"\b(nmap|wireshark|tcpdump|nslookup|dig)\b"),
    ("dev-tools", r"\b(eslint|prettier|stylelint|webpack-dev-server)\b"),
]


class CategoryClassifier:
    """Ordered regex rules mapping a cleaned command to a category tag."""

    def __init__(self, rules: list[tuple[str, str]] | None = None) -> None:
        self._rules: list[tuple[str, re.Pattern[str]]] = []
        for tag, pattern in CATEGORY_RULES if rules is None else rules:
            try:
                self._rules.append((tag, re.compile(pattern)))
            except re.error:
                logger.error("Invalid category pattern for %s: %s", tag, pattern)

    @property
    def tags(self) -> list[str]:
        return [tag for tag, _ in self._rules]

    def classify(self, command: str) -> str | None:
        """Return the tag of the first matching rule, or None."""
        for tag, compiled in self._rules:
            if compiled.search(command):
                return tag
        return None


category_classifier = CategoryClassifier()

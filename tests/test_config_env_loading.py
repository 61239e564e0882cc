from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]

_SCRUBBED_KEYS = (
    "SIFTTT_ACCOUNT",
    "PROTECTION_ACCOUNTS",
    "DCA_ACCOUNTS",
    "PRICE_TRADE_ACCOUNTS",
    "CHECK_INTERVAL_SECONDS",
    "DISCRIMINATOR_SET_DCA",
    "DISCRIMINATOR_AUTO_REPAY",
)


class ConfigEnvLoadingTests(unittest.TestCase):
    def _run(self, code: str, **env_overrides: str) -> subprocess.CompletedProcess[str]:
        env = os.environ.copy()
        for key in _SCRUBBED_KEYS:
            env.pop(key, None)
        env.update(env_overrides)
        return subprocess.run(
            [sys.executable, "-c", code],
            cwd=str(_ROOT),
            env=env,
            capture_output=True,
            text=True,
        )

    def test_missing_bot_env_file_fails_fast(self) -> None:
        result = self._run("import config; print('ok')", BOT_ENV_FILE="data/__definitely_missing_env_for_test__.env")
        self.assertNotEqual(result.returncode, 0)
        details = (result.stdout + "\n" + result.stderr).lower()
        self.assertIn("bot_env_file", details)
        self.assertIn("does not exist", details)

    def test_existing_bot_env_file_is_applied(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            env_path = Path(tmpdir) / "bot.env"
            env_path.write_text(
                "\n".join(
                    [
                        "PROTECTION_ACCOUNTS=AccountOne, AccountTwo,AccountOne",
                        "CHECK_INTERVAL_SECONDS=30",
                        "DISCRIMINATOR_SET_DCA=0x0102030405060708",
                    ]
                )
                + "\n",
                encoding="utf-8-sig",
            )
            result = self._run(
                (
                    "import config; "
                    "print(','.join(config.PROTECTION_ACCOUNTS)); "
                    "print(config.CHECK_INTERVAL_SECONDS); "
                    "print(config.DISCRIMINATOR_SET_DCA.hex())"
                ),
                BOT_ENV_FILE=str(env_path),
            )
        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertEqual(result.stdout.split(), ["AccountOne,AccountTwo", "30", "0102030405060708"])

    def test_account_lists_fall_back_to_shared_account(self) -> None:
        result = self._run(
            (
                "import config; "
                "print(config.PROTECTION_ACCOUNTS, config.DCA_ACCOUNTS, config.PRICE_TRADE_ACCOUNTS)"
            ),
            SIFTTT_ACCOUNT="SharedAccount",
            DCA_ACCOUNTS="DcaOnly",
        )
        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertEqual(result.stdout.strip(), "['SharedAccount'] ['DcaOnly'] ['SharedAccount']")

    def test_defaults(self) -> None:
        result = self._run(
            (
                "import config; "
                "print(config.DISCRIMINATOR_SET_DCA == bytes([102] * 8)); "
                "print(list(config.DISCRIMINATOR_AUTO_REPAY)); "
                "print(config.CHECK_INTERVAL_SECONDS >= 5)"
            ),
            CHECK_INTERVAL_SECONDS="1",
        )
        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertEqual(
            result.stdout.split("\n")[:3],
            ["True", "[112, 104, 176, 118, 250, 61, 48, 164]", "True"],
        )

    def test_bad_discriminator_is_rejected(self) -> None:
        result = self._run("import config", DISCRIMINATOR_AUTO_REPAY="abcd")
        self.assertNotEqual(result.returncode, 0)
        self.assertIn("DISCRIMINATOR_AUTO_REPAY", result.stderr)


if __name__ == "__main__":
    unittest.main()

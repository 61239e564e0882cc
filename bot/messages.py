"""Message templates."""

HELP_MESSAGE = (
    "🤖 <b>SIFTTT Keeper</b>\n\n"
    "/watch &lt;kind&gt; &lt;address&gt; - start monitoring an account\n"
    "/unwatch &lt;kind&gt; &lt;address&gt; - stop monitoring an account\n"
    "/accounts [kind] - list monitored accounts\n"
    "/status &lt;address&gt; - last cached snapshot\n"
    "/check [kind] - run a check cycle now\n"
    "/monitoring - controller state\n\n"
    "Kinds: <code>protection</code>, <code>dca</code>, <code>price_trade</code>"
)

NOT_AUTHORIZED = "⛔ Not authorized."

USAGE_WATCH = "Usage: /watch &lt;kind&gt; &lt;address&gt;"
USAGE_UNWATCH = "Usage: /unwatch &lt;kind&gt; &lt;address&gt;"
USAGE_STATUS = "Usage: /status &lt;address&gt;"

UNKNOWN_KIND = "Unknown kind <code>{kind}</code>. Use one of: {kinds}"
KIND_DISABLED = "Controller <code>{kind}</code> is disabled."
INVALID_ADDRESS = "Invalid account address: <code>{address}</code>"

WATCH_ADDED = "✅ Now monitoring <code>{address}</code> ({kind})."
WATCH_EXISTS = "ℹ️ <code>{address}</code> is already monitored ({kind})."
UNWATCH_REMOVED = "🗑 Stopped monitoring <code>{address}</code> ({kind})."
UNWATCH_MISSING = "ℹ️ <code>{address}</code> is not monitored ({kind})."

ACCOUNTS_HEADER = "📋 <b>Monitored accounts</b>"
ACCOUNTS_EMPTY = "none"

STATUS_NOT_FOUND = "No snapshot for <code>{address}</code>."
STATUS_HEADER = "📊 <b>{kind}</b> <code>{address}</code>"

CHECK_DONE = "🔁 <b>{kind}</b> checked {count} account(s)."

MONITORING_LINE = "{icon} <b>{kind}</b>: {state}, {count} account(s){busy}"

TRIGGER_ALERT = (
    "⚡ <b>Automation triggered</b>\n\n"
    "Kind: <b>{kind}</b>\n"
    "Account: <code>{address}</code>\n"
    "Action: <b>{action}</b>\n"
    "Tx: <code>{signature}</code>"
)

FAILURE_ALERT = (
    "⚠️ <b>Automation submission failed</b>\n\n"
    "Kind: <b>{kind}</b>\n"
    "Account: <code>{address}</code>\n"
    "Error: <code>{error}</code>"
)

from __future__ import annotations

# Runtime lifecycle
STARTUP_INVALID_CONFIG = "startup.invalid_config"
STARTUP_READY = "startup.ready"
SHUTDOWN_COMPLETE = "shutdown.complete"
SHUTDOWN_INTERRUPT = "shutdown.interrupt"
SHUTDOWN_UNEXPECTED_ERROR = "shutdown.unexpected_error"

# HTTP transport
API_REQUEST_RETRY = "api.request.retry"
API_REQUEST_FAILED = "api.request.failed"

# Push transport
SOCKET_CONNECT = "socket.connect"
SOCKET_DISCONNECT = "socket.disconnect"
CHANNEL_JOIN = "channel.join"
CHANNEL_LEAVE = "channel.leave"

# Feed fetch
FEED_FETCH_START = "feed.fetch.start"
FEED_FETCH_SKIPPED = "feed.fetch.skipped"
FEED_FETCH_COMPLETE = "feed.fetch.complete"
FEED_FETCH_FAILED = "feed.fetch.failed"
FEED_FETCH_ABORTED = "feed.fetch.aborted"
FEED_REALTIME_RECEIVED = "feed.realtime.received"
FEED_TEARDOWN = "feed.teardown"

# Status updates
STATUS_UPDATE_OPTIMISTIC = "status_update.optimistic"
STATUS_UPDATE_SENT = "status_update.sent"
STATUS_UPDATE_FAILED = "status_update.failed"

# Broadcasting
BROADCAST_LISTENER_FAILED = "broadcast.listener_failed"
STORE_LISTENER_FAILED = "store.listener_failed"
STORE_ITEM_ATTRS_IGNORED = "store.item_attrs_ignored"

# Slack
SLACK_REQUEST_FAILED = "slack.request.failed"

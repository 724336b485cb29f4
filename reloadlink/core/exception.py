class ReloadLinkError(Exception):
    pass


class StartupTimeout(ReloadLinkError, TimeoutError):
    pass


class ServerNotRunning(ReloadLinkError):
    pass

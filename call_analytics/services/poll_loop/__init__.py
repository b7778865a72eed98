from call_analytics.services.poll_loop.controller import PollLoopController, PollResult

__all__ = ["PollLoopController", "PollResult"]

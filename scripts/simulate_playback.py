#!/usr/bin/env python3
"""Playback simulation: drives the reporting client against a live API.

RUN:  python scripts/simulate_playback.py [user_id] [video_id]

Plays a fake 120-second video at 20x speed: periodic ticks, one seek
back, then the end-of-video event.  Each observation goes through the
same PlaybackSession the player uses (sampling, debounce, local
fallback), then the script prints the stored progress.

Prerequisites:
  - The API must be running: uvicorn app.main:app --port 8000
"""

from __future__ import annotations

import asyncio
import sys

from app.client.api_client import ProgressApiClient
from app.client.session import PlaybackSession, ReportingConfig, SessionState

BASE_URL = "http://localhost:8000"
DURATION = 120.0
SPEEDUP = 20


class _PrintingPlayer:
    def seek_to(self, seconds: float) -> None:
        print(f"  player: seek to {seconds:.1f}s")


async def main(user_id: str, video_id: str) -> None:
    print("Playback simulation")
    print("=" * 50)
    print(f"Target: {BASE_URL}/progress  user={user_id}  video={video_id}")
    print()

    async with ProgressApiClient(BASE_URL, retry_delay=1.0) as api:
        session = PlaybackSession(
            user_id=user_id,
            video_id=video_id,
            api=api,
            player=_PrintingPlayer(),
            config=ReportingConfig(debounce_wait=0.1, auto_resume=True),
            on_completed=lambda p: print(f"  completed at {p['percentage']}%"),
        )
        await session.on_ready()
        await session.on_duration(DURATION)

        position = 0.0
        seeked = False
        while position < DURATION:
            await session.on_progress(position)
            if session.state is SessionState.PLAYING and position >= 60 and not seeked:
                session.on_seek(position, 40)
                position, seeked = 40.0, True
            await asyncio.sleep(1 / SPEEDUP)
            position += 1
        await session.on_ended()

        if session.last_error is not None:
            print(f"  last error: {session.last_error}")

        progress = await api.fetch_progress(user_id=user_id, video_id=video_id)

    print()
    print("Stored progress:")
    print("─" * 40)
    print(f"  percentage:     {progress['percentage']:>8}")
    print(f"  watched time:   {progress['watchedTime']:>8}")
    print(f"  last position:  {progress['lastPosition']:>8}")
    print(f"  completed:      {progress['isCompleted']!s:>8}")
    print(f"  intervals:      {progress['watchedIntervals']}")


if __name__ == "__main__":
    args = sys.argv[1:]
    asyncio.run(
        main(
            args[0] if args else "demo-user",
            args[1] if len(args) > 1 else "demo-video",
        )
    )

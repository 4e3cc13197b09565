"""shortsmith — vertical short-form clips from longer videos.

Turn (start, end) ranges of a source video into independently encoded
1080x1920 clips. One ffmpeg engine instance is shared by everything and
accessed strictly one command at a time.
"""

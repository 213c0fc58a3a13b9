"""EduStream video transcoding backend.

Turns uploaded course videos into adaptive HLS streams through an external
transcoding job service, and keeps each content record's transcode state in
step with the job lifecycle.

Modules:
    - core: Configuration, database, Celery, storage, logging, metrics
    - modules.content: Content records and their change events
    - modules.transcoding: Upload trigger, manual trigger, completion
      listener and cleanup handlers
"""

__version__ = "0.1.0"

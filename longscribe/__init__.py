"""
Core package for the long-form transcription pipeline.

This package contains the components used to split a long recording into
bounded-size segments, transcribe those segments concurrently against a
remote speech-to-text service, stitch the results back into one transcript,
and cut that transcript into token-bounded chunks for summarisation.
"""

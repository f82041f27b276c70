from ybuild.publisher.build_log_publisher import BuildLogPublisher

__all__ = ["BuildLogPublisher"]

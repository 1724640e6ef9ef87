"""Static sites on AWS: CloudFormation stack creation and S3 bucket sync."""

__version__ = "0.1.0"

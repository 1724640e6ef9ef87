"""CloudFormation template and stack lifecycle for a static site.

The template provisions everything a static site or single page app needs:

- an S3 bucket configured for website hosting, readable by everyone,
- a CloudFront distribution in front of the bucket's website endpoint,
  answering for the user's domain,
- an IAM user (plus access key) allowed to manage the bucket's contents only,
- optionally a Route53 hosted zone with an alias record for the distribution.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from . import aws
from .errors import StackCreationError
from .orchestrator.logging import get_logger


log = get_logger("confetti.cloudformation")

# Fixed hosted zone id AWS uses for every CloudFront alias target
CLOUDFRONT_HOSTED_ZONE_ID = "Z2FDTNDATAQYW2"

COMPOUND_SUFFIXES = frozenset(
    {
        "co.uk", "org.uk", "ac.uk", "gov.uk", "me.uk",
        "com.au", "net.au", "org.au",
        "co.nz", "co.jp", "co.za", "co.in",
        "com.br", "com.mx", "com.cn", "com.tr",
    }
)


def root_domain(domain: str) -> bool:
    """True for apex domains (`example.com`, `example.co.uk`), False for subdomains."""
    labels = [x for x in (domain or "").lower().strip().strip(".").split(".") if x]
    if len(labels) < 2:
        return False
    suffix_len = 2 if ".".join(labels[-2:]) in COMPOUND_SUFFIXES else 1
    return len(labels) == suffix_len + 1


def _join(*parts) -> dict:
    return {"Fn::Join": ["", list(parts)]}


def _bucket_arn(suffix: str = "") -> dict:
    return _join("arn:aws:s3:::", {"Ref": "SiteBucket"}, suffix)


def _output(description: str, value: Any) -> dict:
    return {"Description": description, "Value": value}


def template(dns: bool = False) -> Dict[str, Any]:
    resources: Dict[str, Any] = {
        "SiteBucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {
                "WebsiteConfiguration": {
                    "IndexDocument": "index.html",
                    "ErrorDocument": "error.html",
                },
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": True,
                    "IgnorePublicAcls": True,
                    "BlockPublicPolicy": False,
                    "RestrictPublicBuckets": False,
                },
            },
        },
        "SiteBucketPolicy": {
            "Type": "AWS::S3::BucketPolicy",
            "Properties": {
                "Bucket": {"Ref": "SiteBucket"},
                "PolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Sid": "PublicReadForGetBucketObjects",
                            "Effect": "Allow",
                            "Principal": "*",
                            "Action": "s3:GetObject",
                            "Resource": _bucket_arn("/*"),
                        }
                    ],
                },
            },
        },
        "SiteCDN": {
            "Type": "AWS::CloudFront::Distribution",
            "Properties": {
                "DistributionConfig": {
                    "Enabled": True,
                    "Aliases": [{"Ref": "UserDomain"}],
                    "DefaultRootObject": "index.html",
                    "PriceClass": "PriceClass_All",
                    "Origins": [
                        {
                            "Id": "S3WebsiteOrigin",
                            # WebsiteURL is "http://<endpoint>", origins want the bare host
                            "DomainName": {
                                "Fn::Select": [
                                    1,
                                    {
                                        "Fn::Split": [
                                            "://",
                                            {"Fn::GetAtt": ["SiteBucket", "WebsiteURL"]},
                                        ]
                                    },
                                ]
                            },
                            "CustomOriginConfig": {"OriginProtocolPolicy": "http-only"},
                        }
                    ],
                    "DefaultCacheBehavior": {
                        "TargetOriginId": "S3WebsiteOrigin",
                        "ViewerProtocolPolicy": "allow-all",
                        "Compress": True,
                        "ForwardedValues": {"QueryString": False},
                    },
                }
            },
        },
        "DeployUser": {
            "Type": "AWS::IAM::User",
            "Properties": {
                "Policies": [
                    {
                        "PolicyName": "confetti-bucket-deploy",
                        "PolicyDocument": {
                            "Version": "2012-10-17",
                            "Statement": [
                                {
                                    "Effect": "Allow",
                                    "Action": "s3:*",
                                    "Resource": [_bucket_arn(), _bucket_arn("/*")],
                                }
                            ],
                        },
                    }
                ]
            },
        },
        "DeployAccessKey": {
            "Type": "AWS::IAM::AccessKey",
            "Properties": {"UserName": {"Ref": "DeployUser"}},
        },
    }
    outputs: Dict[str, Any] = {
        "BucketName": _output("Name of the S3 bucket holding your site", {"Ref": "SiteBucket"}),
        "CloudFrontDomain": _output(
            "CloudFront domain your site is served from",
            {"Fn::GetAtt": ["SiteCDN", "DomainName"]},
        ),
        "AccessKey": _output(
            "Access key of the IAM user allowed to deploy to the bucket",
            {"Ref": "DeployAccessKey"},
        ),
        "SecretKey": _output(
            "Secret key of the IAM user allowed to deploy to the bucket",
            {"Fn::GetAtt": ["DeployAccessKey", "SecretAccessKey"]},
        ),
        "UserDomain": _output("Domain your site will be reachable under", {"Ref": "UserDomain"}),
    }
    if dns:
        resources["HostedZone"] = {
            "Type": "AWS::Route53::HostedZone",
            "Properties": {"Name": {"Ref": "UserDomain"}},
        }
        resources["SiteRecordSet"] = {
            "Type": "AWS::Route53::RecordSet",
            "Properties": {
                "HostedZoneId": {"Ref": "HostedZone"},
                "Name": {"Ref": "UserDomain"},
                "Type": "A",
                "AliasTarget": {
                    "HostedZoneId": CLOUDFRONT_HOSTED_ZONE_ID,
                    "DNSName": {"Fn::GetAtt": ["SiteCDN", "DomainName"]},
                },
            },
        }
        outputs["HostedZoneId"] = _output(
            "Route53 hosted zone managing your domain", {"Ref": "HostedZone"}
        )
    return {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Description": "confetti static site",
        "Parameters": {
            "UserDomain": {
                "Type": "String",
                "Description": "Domain of the site, without protocol",
            }
        },
        "Resources": resources,
        "Outputs": outputs,
    }


def stack_error(e: ClientError, stack: str, action: str) -> StackCreationError:
    err = e.response.get("Error", {})
    return StackCreationError(
        f"{action} {stack} failed: {err.get('Message') or e}",
        metadata={"stack": stack, "code": err.get("Code")},
    )


def run_template(
    creds: Dict[str, str],
    stack_name: str,
    tpl: Dict[str, Any],
    params: Dict[str, str],
    client=None,
) -> Dict[str, str]:
    cf = client or aws.client("cloudformation", creds)
    log.info("Creating stack %s", stack_name)
    try:
        resp = cf.create_stack(
            StackName=stack_name,
            TemplateBody=json.dumps(tpl),
            Parameters=[
                {"ParameterKey": k, "ParameterValue": str(v)} for k, v in params.items()
            ],
            Capabilities=["CAPABILITY_IAM"],
        )
    except ClientError as e:
        raise stack_error(e, stack_name, "Creating stack") from e
    return {"stack_id": resp["StackId"]}


def snake_key(key: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).lower()


def get_outputs(
    creds: Dict[str, str], stack_id: str, client=None
) -> Dict[str, Dict[str, Optional[str]]]:
    cf = client or aws.client("cloudformation", creds)
    try:
        stacks = cf.describe_stacks(StackName=stack_id)["Stacks"]
    except ClientError as e:
        raise stack_error(e, stack_id, "Reading outputs of") from e
    outs = stacks[0].get("Outputs", []) if stacks else []
    return {
        snake_key(o["OutputKey"]): {
            "description": o.get("Description"),
            "output_value": o.get("OutputValue"),
        }
        for o in outs
    }

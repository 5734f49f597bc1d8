#!/usr/bin/env python3
import os

import aws_cdk as cdk

from infra.infra_stack import BedrockAgentPineconeStack


app = cdk.App()
BedrockAgentPineconeStack(app, "BedrockAgentPineconeStack",
    pinecone_environment=app.node.try_get_context("pineconeEnvironment") or "us-west1-gcp",
    pinecone_index_name=app.node.try_get_context("pineconeIndexName") or "bedrock-kb-index",
    # Full ARN of a populated {"apiKey": ...} secret; without it the index is not created on deploy
    api_key_secret_arn=app.node.try_get_context("pineconeApiKeySecretArn"),

    # Deploy to current AWS CLI configured account/region
    env=cdk.Environment(
        account=os.getenv('CDK_DEFAULT_ACCOUNT'),
        region=os.getenv('CDK_DEFAULT_REGION')
    ),

    description="Bedrock agent resources with a Pinecone knowledge base index"
)

app.synth()
